"""quire — tiered note persistence with file-backed storage and a derived index."""

__version__ = "0.1.0"
