"""Populate block devices with the content of bootable images."""

import asyncio
import contextlib
import logging
import os
from pathlib import Path
from typing import Optional, Union

import aiofiles

from ..core.types import ContentStore, RegistrySource
from ..exceptions import DestinationWriteError, SourceReadError
from ..image import resolve_image
from ..models import LayerRole
from .copy import DEFAULT_BUFFER_SIZE, populate
from .rater import Rater

logger = logging.getLogger(__name__)

__all__ = ["DEFAULT_BUFFER_SIZE", "Rater", "populate", "populate_image"]


async def populate_image(
    registry: RegistrySource,
    store: ContentStore,
    reference: str,
    device_path: Union[str, Path],
    role: LayerRole = LayerRole.ROOTFS,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    progress_interval: Optional[float] = 5.0,
    create: bool = False,
) -> int:
    """Resolve ``reference`` and write one of its layers onto a device.

    The destination is opened read/write without truncation, as block devices
    require; pass ``create=True`` to populate a regular file instead. A failed
    copy leaves the destination partially written.

    Args:
        registry: Registry resolving the reference
        store: Local store the image layers are pulled into
        reference: Image reference (e.g. "ghcr.io/team/os:v1")
        device_path: Block device (or file) to populate
        role: Layer to write, the rootfs by default
        buffer_size: Copy buffer size in bytes
        progress_interval: Seconds between rate log lines, None to disable
        create: Create or truncate ``device_path`` instead of requiring it

    Returns:
        Number of bytes written

    Raises:
        ResolutionError: If the image cannot be resolved
        LocalizationError: If a layer cannot be pulled
        SourceReadError: If the layer cannot be opened or read
        DestinationWriteError: If the device cannot be opened or written
        KeyError: If ``role`` is not a file layer role
    """
    image = await resolve_image(registry, store, reference)
    layer = image.layer(role)
    device = str(device_path)

    async with contextlib.AsyncExitStack() as stack:
        try:
            src = await stack.enter_async_context(aiofiles.open(layer.path, "rb"))
        except OSError as e:
            raise SourceReadError(
                f"failed to open {LayerRole(role).value} file {layer.path} of {reference}: {e}",
                destination=device,
            ) from e
        try:
            dst = await stack.enter_async_context(
                aiofiles.open(device, "wb" if create else "r+b")
            )
        except OSError as e:
            raise DestinationWriteError(
                f"failed to open block device {device}: {e}", destination=device
            ) from e

        logger.info(
            "Start to populate %s with %s of %s (buffer size %d)",
            device,
            LayerRole(role).value,
            reference,
            buffer_size,
        )
        rater = Rater(src)
        copied = await populate(
            rater,
            dst,
            buffer_size=buffer_size,
            progress_interval=progress_interval,
            destination_name=device,
        )
        try:
            await dst.flush()
            await asyncio.get_running_loop().run_in_executor(None, os.fsync, dst.fileno())
        except OSError as e:
            raise DestinationWriteError(
                f"failed to sync {device}: {e}", destination=device, bytes_written=copied
            ) from e

    logger.info("Successfully populated %s with %d bytes at %s", device, copied, rater)
    return copied
