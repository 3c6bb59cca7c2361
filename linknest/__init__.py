"""
LinkNest - personal bookmark manager

Links and folders live in an in-memory store that keeps folder references
consistent and persists every change through a pluggable storage backend
(SQLite via SQLAlchemy, a JSON file, or memory only).

Example Usage:
    >>> from linknest import LinkStore, LinkData, QueryEngine
    >>> store = LinkStore()
    >>> link = store.add_link(LinkData(url="https://react.dev", title="React Docs", tags=["react"]))
    >>> engine = QueryEngine(store, query="reakt")
    >>> [item.link.title for item in engine.results()]
    ['React Docs']
"""

__version__ = "1.0.0"
__author__ = "LinkNest Contributors"

# Store and entities
from linknest.store import LinkStore, open_store
from linknest.models import Folder, Link, LinkData, LinkUpdate, Snapshot, UNSET

# Configuration
from linknest.config import LinkNestConfig, get_config, init_config

# Query
from linknest.query import QueryEngine, ScoredLink, SortMode, run_query, score_link

# Backup / restore
from linknest.codec import export_file, export_snapshot, parse_snapshot, read_file

# Suggestions
from linknest.suggest import SuggestionAdapter, SuggestionToken, apply_folder_suggestions

# Errors
from linknest.errors import AdapterError, LinkNestError, NotFoundError, ValidationError

__all__ = [
    # Store
    "LinkStore",
    "open_store",
    # Models
    "Folder",
    "Link",
    "LinkData",
    "LinkUpdate",
    "Snapshot",
    "UNSET",
    # Config
    "LinkNestConfig",
    "get_config",
    "init_config",
    # Query
    "QueryEngine",
    "ScoredLink",
    "SortMode",
    "run_query",
    "score_link",
    # Backup / restore
    "export_file",
    "export_snapshot",
    "parse_snapshot",
    "read_file",
    # Suggestions
    "SuggestionAdapter",
    "SuggestionToken",
    "apply_folder_suggestions",
    # Errors
    "LinkNestError",
    "NotFoundError",
    "ValidationError",
    "AdapterError",
]
