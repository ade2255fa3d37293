"""Content-addressed local storage."""

from .local import LocalStore

__all__ = ["LocalStore"]
