"""Storage class registries."""

from .registry import ClassRegistry, load_classes, load_classes_file

__all__ = ["ClassRegistry", "load_classes", "load_classes_file"]
