"""Utility functions for the volume populator."""

from .digest import calculate_digest, new_hasher, split_digest, validate_digest

__all__ = ["calculate_digest", "new_hasher", "split_digest", "validate_digest"]
