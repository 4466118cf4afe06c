# Overview: Error taxonomy shared by services, routes and CLI.

from __future__ import annotations


class InventoryError(Exception):
    """Base class for all inventory-control failures."""


class ValidationError(InventoryError, ValueError):
    """400-level input problem, raised before any mutation."""


class NotFoundError(ValidationError):
    """404-level: referenced store, article, user or document does not exist."""


class AuthorizationError(InventoryError):
    """403-level: actor lacks the store permission for the action."""

    def __init__(self, message: str, *, user_id=None, store_id=None, action=None):
        super().__init__(message)
        self.user_id = user_id
        self.store_id = store_id
        self.action = action


class PersistenceError(InventoryError):
    """Failure talking to the remote persistence/catalog collaborator."""
