"""
Ingestion — document loading, chunking, embedding and the startup state
machine that writes them into the vector store.

This module converts raw documents (PDF, plain text, Markdown) into
embedded chunks stored in a vector database, once, before the service
accepts traffic.
"""
