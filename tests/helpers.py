"""Test helpers: in-memory registry, streams and sinks."""

import hashlib
import io
import json
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import aiohttp

from volume_populator.exceptions import ImageNotFoundError, ManifestError
from volume_populator.models import (
    CONFIG_MEDIA_TYPE,
    INITRAMFS_MEDIA_TYPE,
    KERNEL_MEDIA_TYPE,
    ROOTFS_MEDIA_TYPE,
    LayerDescriptor,
)


def sha256_digest(data: bytes) -> str:
    """Return the sha256 digest string of data."""
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


class BytesStream:
    """Async byte stream over in-memory data.

    ``max_chunk`` caps how much a single read returns, like a network stream.
    """

    def __init__(self, data: bytes, max_chunk: Optional[int] = None) -> None:
        self.data = data
        self.max_chunk = max_chunk
        self.offset = 0
        self.reads = 0

    async def read(self, n: int = -1) -> bytes:
        self.reads += 1
        if n is None or n < 0:
            n = len(self.data) - self.offset
        if self.max_chunk is not None:
            n = min(n, self.max_chunk)
        chunk = self.data[self.offset : self.offset + n]
        self.offset += len(chunk)
        return chunk


class FailingStream(BytesStream):
    """Stream raising an I/O error once ``fail_after`` bytes were read."""

    def __init__(self, data: bytes, fail_after: int) -> None:
        super().__init__(data)
        self.fail_after = fail_after

    async def read(self, n: int = -1) -> bytes:
        if self.offset >= self.fail_after:
            raise OSError("connection reset by peer")
        return await super().read(min(n, self.fail_after - self.offset))


class FailingWriter:
    """Synchronous sink that fills up after ``capacity`` bytes."""

    name = "/dev/full-device"

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        self.data = bytearray()

    def write(self, chunk: bytes) -> int:
        if len(self.data) + len(chunk) > self.capacity:
            raise OSError(28, "No space left on device")
        self.data.extend(chunk)
        return len(chunk)


class AsyncSink:
    """Sink with an awaitable write, like an aiofiles file."""

    def __init__(self) -> None:
        self.data = bytearray()
        self.writes = 0

    async def write(self, chunk: bytes) -> int:
        self.writes += 1
        self.data.extend(chunk)
        return len(chunk)


class FakeLayer:
    """Layer handle serving in-memory content."""

    def __init__(self, media_type: str, content: bytes, digest: Optional[str] = None) -> None:
        self.content = content
        self._descriptor = LayerDescriptor(
            digest=digest or sha256_digest(content),
            media_type=media_type,
            size=len(content),
        )
        self.opened = 0

    @property
    def descriptor(self) -> LayerDescriptor:
        return self._descriptor

    @asynccontextmanager
    async def open_content(self):
        self.opened += 1
        yield BytesStream(self.content, max_chunk=4096)


class FakeImage:
    """Image handle with a config blob and an ordered layer list."""

    def __init__(self, layers: List[FakeLayer], config: Optional[Dict] = None) -> None:
        self._layers = layers
        config_blob = json.dumps(config if config is not None else {}).encode("utf-8")
        self._config = FakeLayer(CONFIG_MEDIA_TYPE, config_blob)
        self.fail_layers = False

    async def config(self) -> FakeLayer:
        return self._config

    async def layers(self) -> List[FakeLayer]:
        if self.fail_layers:
            raise ManifestError("layer list unavailable")
        return list(self._layers)


class FakeRegistry:
    """Registry resolving references from a dictionary."""

    def __init__(self, images: Optional[Dict[str, FakeImage]] = None) -> None:
        self.images = images or {}
        self.resolved: List[str] = []

    async def resolve(self, reference: str) -> FakeImage:
        self.resolved.append(reference)
        try:
            return self.images[reference]
        except KeyError:
            raise ImageNotFoundError(f"Image {reference} not found") from None


def rootfs_layer(content: bytes = b"rootfs-content") -> FakeLayer:
    return FakeLayer(ROOTFS_MEDIA_TYPE, content)


def kernel_layer(content: bytes = b"kernel-content") -> FakeLayer:
    return FakeLayer(KERNEL_MEDIA_TYPE, content)


def initramfs_layer(content: bytes = b"initramfs-content") -> FakeLayer:
    return FakeLayer(INITRAMFS_MEDIA_TYPE, content)


def os_image(**overrides) -> FakeImage:
    """Build a complete bootable image: rootfs, kernel and initramfs."""
    layers = [
        overrides.get("rootfs", rootfs_layer()),
        overrides.get("kernel", kernel_layer()),
        overrides.get("initramfs", initramfs_layer()),
    ]
    return FakeImage(
        [layer for layer in layers if layer is not None],
        config=overrides.get("config", {"commandLine": "console=ttyS0"}),
    )


class TrickleWriter(io.RawIOBase):
    """Unbuffered sink accepting at most ``limit`` bytes per write."""

    def __init__(self, limit: int) -> None:
        super().__init__()
        self.limit = limit
        self.data = bytearray()
        self.writes = 0

    def writable(self) -> bool:
        return True

    def write(self, chunk) -> int:
        self.writes += 1
        accepted = bytes(chunk[: self.limit])
        self.data.extend(accepted)
        return len(accepted)


class CutOffStream(BytesStream):
    """Stream whose connection drops after ``cut_after`` bytes."""

    def __init__(self, data: bytes, cut_after: int = 0) -> None:
        super().__init__(data)
        self.cut_after = cut_after

    async def read(self, n: int = -1) -> bytes:
        if self.offset >= self.cut_after:
            raise aiohttp.ClientPayloadError("Response payload is not completed")
        return await super().read(min(n, self.cut_after - self.offset))


class CutOffLayer(FakeLayer):
    """Layer whose download breaks off halfway."""

    @asynccontextmanager
    async def open_content(self):
        self.opened += 1
        yield CutOffStream(self.content, cut_after=len(self.content) // 2)
