"""Document storage, cache lifecycle, ingestion pipeline and search."""
