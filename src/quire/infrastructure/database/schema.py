"""SQLAlchemy Core table definitions for the quire database.

``notes_index`` is the identity-keyed metadata cache for file-backed
notes; it can always be rebuilt from the files. ``notes``, ``containers``
and ``templates`` hold the authoritative entity graph, each row carrying
a ``version`` counter for optimistic concurrency.

Timestamps are stored as ISO 8601 text, tag lists as JSON arrays.
"""

from __future__ import annotations

from sqlalchemy import REAL, Column, Index, Integer, MetaData, Table, Text

metadata = MetaData()

notes_index = Table(
    "notes_index",
    metadata,
    Column("uuid", Text, primary_key=True),
    Column("title", Text, nullable=False),
    Column("tags", Text, nullable=False, default="[]", server_default="[]"),  # JSON array
    Column("created", Text, nullable=False),
    Column("modified", Text, nullable=False),
    Column("progress", REAL, default=0.0, server_default="0.0"),
    Column("status", Text, nullable=False, default="draft", server_default="draft"),
    Column("path", Text, nullable=False, unique=True),
    Column("folder_path", Text),  # NULL for the root
    Column("filename", Text, nullable=False),
    Column("word_count", Integer),
    Column("char_count", Integer),
    Column("content_hash", Text),
    Column("excerpt", Text),
    Index("ix_notes_index_folder", "folder_path"),
    Index("ix_notes_index_modified", "modified"),
)

notes = Table(
    "notes",
    metadata,
    Column("id", Text, primary_key=True),
    Column("title", Text),
    Column("created_at", Text),
    Column("modified_at", Text),
    Column("content", Text),
    Column("legacy_file", Text),
    Column("file_path", Text),
    Column("container_id", Text),
    Column("is_trashed", Integer, default=0, server_default="0"),
    Column("is_favorite", Integer, default=0, server_default="0"),
    Column("tags", Text, default="[]", server_default="[]"),  # JSON array
    Column("goal_target", Integer, default=0, server_default="0"),
    Column("word_count", Integer, default=0, server_default="0"),
    Column("preview", Text),
    Column("sort_order", Integer, default=0, server_default="0"),
    Column("version", Integer, nullable=False, default=1, server_default="1"),
    Index("ix_notes_container", "container_id"),
)

containers = Table(
    "containers",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text),
    Column("parent_id", Text),
    Column("sort_order", Integer, default=0, server_default="0"),
    Column("created_at", Text),
    Column("modified_at", Text),
    Column("version", Integer, nullable=False, default=1, server_default="1"),
)

templates = Table(
    "templates",
    metadata,
    Column("id", Text, primary_key=True),
    Column("name", Text),
    Column("content", Text, nullable=False, default="", server_default=""),
    Column("category", Text),
    Column("sort_order", Integer, default=0, server_default="0"),
    Column("version", Integer, nullable=False, default=1, server_default="1"),
)
