"""
Entity models for LinkNest.

Links and folders are immutable value objects. The store replaces an
entity with a new value on every change, so a snapshot handed out by the
store can never be modified behind its back.
"""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Tuple

from linknest.utils import parse_tags


class _Unset:
    """Marker for update fields the caller did not provide."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNSET"

    def __bool__(self):
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class Folder:
    """
    A named folder links can be filed under.

    Attributes:
        id: Opaque unique identifier, assigned by the store
        name: Display name (mutable through the store)
        created_at: Creation timestamp, immutable
    """
    id: str
    name: str
    created_at: datetime

    def renamed(self, name: str) -> "Folder":
        return replace(self, name=name)


@dataclass(frozen=True)
class Link:
    """
    A saved URL with metadata.

    Attributes:
        id: Opaque unique identifier, assigned by the store
        url: The link URL (not validated for reachability)
        title: Link title
        description: Optional free-text description
        tags: Ordered tags; duplicates are kept but filtering treats them as a set
        folder_id: Weak reference to a Folder, or None when unfiled
        created_at: Creation timestamp, immutable
    """
    id: str
    url: str
    title: str
    created_at: datetime
    description: str = ""
    tags: Tuple[str, ...] = ()
    folder_id: Optional[str] = None

    def __repr__(self):
        return f"<Link(id={self.id}, title='{self.title[:50]}', url='{self.url[:50]}')>"


@dataclass(frozen=True)
class LinkData:
    """Caller-supplied fields of a new link. id and created_at come from the store."""
    url: str
    title: str
    description: str = ""
    tags: Tuple[str, ...] = ()
    folder_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "tags", tuple(parse_tags(self.tags)))
        object.__setattr__(self, "description", self.description or "")


@dataclass(frozen=True)
class LinkUpdate:
    """
    Partial update of a link.

    Only fields that were given are applied. folder_id=None unfiles the
    link, while leaving folder_id unset keeps the current folder. id and
    created_at are deliberately not fields here, so they cannot be changed.
    """
    url: Any = UNSET
    title: Any = UNSET
    description: Any = UNSET
    tags: Any = UNSET
    folder_id: Any = UNSET

    def __post_init__(self):
        if self.tags is not UNSET:
            object.__setattr__(self, "tags", tuple(parse_tags(self.tags)))
        if self.description is None:
            object.__setattr__(self, "description", "")

    def changes(self) -> Dict[str, Any]:
        """Fields that were provided, as a dict."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()

    def apply(self, link: Link) -> Link:
        """Return a copy of link with the provided fields overwritten."""
        return replace(link, **self.changes())


@dataclass(frozen=True)
class Snapshot:
    """A complete capture of store state."""
    links: Tuple[Link, ...] = field(default_factory=tuple)
    folders: Tuple[Folder, ...] = field(default_factory=tuple)

    @classmethod
    def of(cls, links: Sequence[Link], folders: Sequence[Folder]) -> "Snapshot":
        return cls(links=tuple(links), folders=tuple(folders))
