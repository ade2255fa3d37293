"""Registries of named storage classes (volume and bucket classes)."""

import logging
from pathlib import Path
from typing import IO, Dict, Iterable, List, Optional, Tuple, Union

import yaml

from ..exceptions import ClassRegistryError, DuplicateClassError
from ..models import StorageClass

logger = logging.getLogger(__name__)


def _parse_class(record, index: int) -> StorageClass:
    if not isinstance(record, dict):
        raise ClassRegistryError(f"class #{index} must be a mapping, got {type(record).__name__}")

    name = record.get("name")
    if not isinstance(name, str) or not name:
        raise ClassRegistryError(f"class #{index} has no name")

    capabilities = record.get("capabilities") or {}
    if not isinstance(capabilities, dict):
        raise ClassRegistryError(f"capabilities of class {name} must be a mapping")

    for key, value in capabilities.items():
        # bool is an int subclass but never a valid quantity
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ClassRegistryError(
                f"capability {key} of class {name} must be a number, got {value!r}"
            )

    return StorageClass(name=name, capabilities={str(k): v for k, v in capabilities.items()})


def load_classes(source: Union[str, bytes, IO]) -> List[StorageClass]:
    """Decode a list of classes from YAML or JSON.

    Args:
        source: Text, bytes or a readable stream holding a list of records,
            each with a ``name`` and a ``capabilities`` mapping

    Returns:
        list[StorageClass]: classes in document order

    Raises:
        ClassRegistryError: If the document is malformed

    Examples:
        classes = load_classes("- name: fast\\n  capabilities: {tps: 100, iops: 1000}\\n")
    """
    try:
        # JSON is a subset of YAML, one decoder accepts both
        data = yaml.safe_load(source)
    except yaml.YAMLError as e:
        raise ClassRegistryError(f"unable to unmarshal classes: {e}") from e

    if data is None:
        return []
    if not isinstance(data, list):
        raise ClassRegistryError(
            f"unable to unmarshal classes: expected a list, got {type(data).__name__}"
        )

    return [_parse_class(record, index) for index, record in enumerate(data)]


def load_classes_file(filename: Union[str, Path]) -> List[StorageClass]:
    """Load classes from a YAML or JSON file.

    Raises:
        ClassRegistryError: If the file cannot be read or is malformed
    """
    try:
        with open(filename, "r", encoding="utf-8") as handle:
            return load_classes(handle)
    except (OSError, UnicodeDecodeError) as e:
        raise ClassRegistryError(f"unable to open class file ({filename}): {e}") from e


class ClassRegistry:
    """Name-keyed set of storage classes."""

    def __init__(self, classes: Iterable[StorageClass]) -> None:
        self._classes: Dict[str, StorageClass] = {}
        for storage_class in classes:
            if storage_class.name in self._classes:
                raise DuplicateClassError(storage_class.name)
            self._classes[storage_class.name] = storage_class
        logger.debug("Loaded %d classes", len(self._classes))

    @classmethod
    def load(cls, source: Union[str, bytes, IO]) -> "ClassRegistry":
        """Build a registry from a YAML or JSON class list."""
        return cls(load_classes(source))

    @classmethod
    def load_file(cls, filename: Union[str, Path]) -> "ClassRegistry":
        """Build a registry from a YAML or JSON class file."""
        return cls(load_classes_file(filename))

    def get(self, name: str) -> Tuple[Optional[StorageClass], bool]:
        """Look up a class by exact name.

        Returns:
            The class and True, or None and False when no class has that name
        """
        storage_class = self._classes.get(name)
        return storage_class, storage_class is not None

    def list(self) -> List[StorageClass]:
        """Return all classes. Callers must not rely on the order."""
        return list(self._classes.values())

    def __len__(self) -> int:
        return len(self._classes)
