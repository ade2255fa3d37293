"""Registry access: configuration, contracts, reference parsing and client."""

from .reference import ImageReference, parse_reference
from .registry_client import RegistryClient, RemoteImage, RemoteLayer
from .types import (
    ByteStream,
    ContentStore,
    ImageHandle,
    LayerHandle,
    RegistryConfig,
    RegistrySource,
)

__all__ = [
    "ByteStream",
    "ContentStore",
    "ImageHandle",
    "ImageReference",
    "LayerHandle",
    "RegistryClient",
    "RegistryConfig",
    "RegistrySource",
    "RemoteImage",
    "RemoteLayer",
    "parse_reference",
]
