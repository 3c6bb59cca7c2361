"""
Exception types for LinkNest.

Store mutations never raise these for unknown ids; they are for callers
that want a hard failure (the CLI) and for the codec and adapters.
"""
from typing import List, Optional


class LinkNestError(Exception):
    """Base class for all LinkNest errors."""
    pass


class NotFoundError(LinkNestError):
    """An operation referenced an unknown link or folder id."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} not found: {entity_id}")


class ValidationError(LinkNestError):
    """A snapshot document failed validation. The store is left untouched."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        super().__init__(message)

    def __str__(self):
        message = super().__str__()
        if not self.errors:
            return message
        details = "; ".join(self.errors[:5])
        if len(self.errors) > 5:
            details += f" (and {len(self.errors) - 5} more)"
        return f"{message}: {details}"


class AdapterError(LinkNestError):
    """AI suggestion or persistence I/O failure."""
    pass
