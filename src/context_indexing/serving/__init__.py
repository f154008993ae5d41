"""
Serving — HTTP endpoints that register digests and trigger indexing.
"""
