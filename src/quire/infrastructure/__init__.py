"""Infrastructure layer — file store, SQLite index, entity contexts.

This layer depends on stdlib and third-party libs (SQLAlchemy).
It may import from domain, never from services.
"""
