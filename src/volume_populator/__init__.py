"""Volume Populator - provision bootable volumes from OCI images."""

__version__ = "0.1.0"

from .classes import ClassRegistry, load_classes, load_classes_file
from .config import PopulatorConfig, load_config
from .core.reference import ImageReference, parse_reference
from .core.registry_client import RegistryClient
from .core.types import RegistryConfig
from .exceptions import (
    ClassRegistryError,
    DestinationWriteError,
    DigestMismatchError,
    DuplicateClassError,
    IncompleteImageError,
    LocalizationError,
    PopulatorError,
    RegistryConnectionError,
    RegistryError,
    ResolutionError,
    SourceReadError,
    StreamingError,
    ValidationError,
)
from .image import resolve_image
from .models import Image, ImageConfig, LayerDescriptor, LayerRole, ResolvedLayer, StorageClass
from .populate import Rater, populate, populate_image
from .store import LocalStore

__all__ = [
    "ClassRegistry",
    "ClassRegistryError",
    "DestinationWriteError",
    "DigestMismatchError",
    "DuplicateClassError",
    "Image",
    "ImageConfig",
    "ImageReference",
    "IncompleteImageError",
    "LayerDescriptor",
    "LayerRole",
    "LocalStore",
    "LocalizationError",
    "PopulatorConfig",
    "PopulatorError",
    "Rater",
    "RegistryClient",
    "RegistryConfig",
    "RegistryConnectionError",
    "RegistryError",
    "ResolutionError",
    "ResolvedLayer",
    "SourceReadError",
    "StorageClass",
    "StreamingError",
    "ValidationError",
    "load_classes",
    "load_classes_file",
    "load_config",
    "parse_reference",
    "populate",
    "populate_image",
    "resolve_image",
]
