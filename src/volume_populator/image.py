"""Resolve bootable images: classify layers and localize their content."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict

import aiohttp

from .core.types import ByteStream, ContentStore, ImageHandle, LayerHandle, RegistrySource
from .exceptions import (
    IncompleteImageError,
    LocalizationError,
    PopulatorError,
    RegistryError,
    ResolutionError,
    ValidationError,
)
from .models import REQUIRED_ROLES, Image, ImageConfig, LayerRole, ResolvedLayer

logger = logging.getLogger(__name__)

# Upper bound for the config blob, which only carries boot parameters
MAX_CONFIG_SIZE = 4 * 1024 * 1024

# Failures of a registry source other than its own PopulatorErrors
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)


async def resolve_image(
    registry: RegistrySource, store: ContentStore, reference: str
) -> Image:
    """Resolve an image reference into a bootable image.

    Pulls the kernel, initramfs and rootfs layers of ``reference`` into
    ``store`` and returns an :class:`Image` pointing at their local paths.
    Layers with other media types are skipped. When several layers share a
    role, the first one in manifest order wins and the others are ignored.

    Args:
        registry: Registry resolving the reference
        store: Content-addressed store receiving the layers
        reference: Image reference (e.g. "ghcr.io/team/os:v1")

    Returns:
        Image: the resolved image

    Raises:
        ResolutionError: If the reference cannot be resolved, its config
            cannot be read or its layer list is unavailable
        IncompleteImageError: If rootfs, kernel or initramfs is missing
        LocalizationError: If a layer cannot be stored locally
    """
    try:
        handle = await registry.resolve(reference)
    except (RegistryError, ValidationError, *TRANSPORT_ERRORS) as e:
        raise ResolutionError(
            f"failed to resolve image ref {reference}: {e}", reference=reference
        ) from e

    config = await _read_config(handle, reference)

    try:
        layers = await handle.layers()
    except (RegistryError, *TRANSPORT_ERRORS) as e:
        raise ResolutionError(
            f"error getting layers of image {reference}: {e}", reference=reference
        ) from e

    resolved: Dict[LayerRole, ResolvedLayer] = {}
    for layer in layers:
        descriptor = layer.descriptor
        role = descriptor.role
        if role not in REQUIRED_ROLES:
            logger.debug("Skipping layer %s (%s)", descriptor.digest, descriptor.media_type)
            continue

        if role in resolved:
            logger.warning(
                "Ignoring duplicate %s layer %s of %s, using %s",
                role.value,
                descriptor.digest,
                reference,
                resolved[role].digest,
            )
            continue

        path = await _localize(store, layer, reference, role)
        resolved[role] = ResolvedLayer(descriptor=descriptor, path=path)

    missing = [role.value for role in REQUIRED_ROLES if role not in resolved]
    if missing:
        raise IncompleteImageError(reference, missing)

    logger.info(
        "Resolved image %s (rootfs %s, %d bytes)",
        reference,
        resolved[LayerRole.ROOTFS].digest,
        resolved[LayerRole.ROOTFS].size,
    )
    return Image(
        reference=reference,
        config=config,
        root_fs=resolved[LayerRole.ROOTFS],
        kernel=resolved[LayerRole.KERNEL],
        initramfs=resolved[LayerRole.INITRAMFS],
    )


async def _read_config(handle: ImageHandle, reference: str) -> ImageConfig:
    try:
        layer = await handle.config()
        if layer.descriptor.size > MAX_CONFIG_SIZE:
            raise ResolutionError(
                f"config of image {reference} is too large ({layer.descriptor.size} bytes)",
                reference=reference,
            )
        async with layer.open_content() as stream:
            raw = await _read_limited(stream, reference)
    except (RegistryError, *TRANSPORT_ERRORS) as e:
        raise ResolutionError(
            f"error getting config of image {reference}: {e}", reference=reference
        ) from e

    try:
        data = json.loads(raw or b"{}")
        if not isinstance(data, dict):
            raise ValueError("config is not a JSON object")
        return ImageConfig.from_dict(data)
    except ValueError as e:
        raise ResolutionError(
            f"error decoding config of image {reference}: {e}", reference=reference
        ) from e


async def _localize(
    store: ContentStore, layer: LayerHandle, reference: str, role: LayerRole
) -> Path:
    digest = layer.descriptor.digest
    try:
        if await store.contains(digest):
            logger.debug("Layer %s of %s already present", digest, reference)
            return store.path_for(digest)

        async with layer.open_content() as stream:
            path = await store.localize(digest, stream)
    except (PopulatorError, *TRANSPORT_ERRORS) as e:
        raise LocalizationError(
            f"error pulling {role.value} layer {digest} of image {reference}: {e}",
            digest=digest,
        ) from e

    logger.debug("Pulled %s layer %s of %s", role.value, digest, reference)
    return path


async def _read_limited(stream: ByteStream, reference: str) -> bytes:
    chunks = []
    total = 0
    while True:
        chunk = await stream.read(64 * 1024)
        if not chunk:
            break
        total += len(chunk)
        if total > MAX_CONFIG_SIZE:
            raise ResolutionError(
                f"config of image {reference} exceeds {MAX_CONFIG_SIZE} bytes",
                reference=reference,
            )
        chunks.append(chunk)
    return b"".join(chunks)
