"""
Ingestion — chunking extracted markdown and embedding the chunks.

The extraction of markdown from PDFs, DOCX, images, and web pages happens
upstream; this package starts from the extracted text.
"""
