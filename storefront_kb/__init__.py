"""
Top-level package for the storefront product knowledge base.

This package crawls storefront product pages, extracts structured
product records, validates and repairs them, composes searchable text
and indexes it into a Qdrant collection for semantic search.  A small
scheduler keeps the index fresh.  There are no side effects on import;
the ``storefront-kb`` command (``storefront_kb.cli``) wires everything
together.
"""
