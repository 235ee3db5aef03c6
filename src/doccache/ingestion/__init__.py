"""Page fetching, content extraction, chunking and categorisation."""
