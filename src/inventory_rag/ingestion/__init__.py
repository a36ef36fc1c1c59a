"""
Ingestion — chunking, embedding and upserting uploaded inventory data.

This package turns a raw payload (JSON records or free text) into
fixed-width vectors stored in a vector database, reporting progress to
the processing coordinator as it goes.
"""
