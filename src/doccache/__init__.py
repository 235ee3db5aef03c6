"""DocCache - local documentation cache and search."""

__version__ = "0.1.0"
