"""
Chat subsystem exceptions.

Raised by the chat components and mapped to HTTP status codes by the routes:

- ValidationError -> 400
- NotFoundError   -> 404
- StorageError    -> 500
- CacheError      -> logged; only surfaced by the admin cache flush
"""

from typing import Any, Dict, Optional


class ChatError(Exception):
    """Base exception for every chat subsystem error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ChatError):
    """Malformed or missing caller input. Never retried."""


class NotFoundError(ChatError):
    """A referenced thread does not exist."""


class StorageError(ChatError):
    """The persistent store failed; the operation did not take effect."""


class DuplicateThreadError(StorageError):
    """Compare-and-insert lost the race: a thread for the triple already exists."""


class CacheError(ChatError):
    """The cache backend failed. Callers degrade to the persistent store."""
