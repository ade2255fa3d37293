"""Core types: registry configuration and the registry/store contracts."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncContextManager, List, Optional, Protocol, Tuple

from ..models import LayerDescriptor

DOCKER_HUB = "docker.io"
DOCKER_HUB_API_HOST = "registry-1.docker.io"

# Hosts reached over plain HTTP regardless of configuration
LOCAL_HOSTS = ("localhost", "127.0.0.1", "::1")


@dataclass(frozen=True)
class RegistryConfig:
    """Explicit registry access settings passed to a registry client.

    Attributes:
        default_registry: Registry used for references without a host
        timeout: Total request timeout in seconds
        username: Optional user for token exchange
        password: Optional password or token for token exchange
        insecure_registries: Hosts (host[:port]) reached over plain HTTP
        platform: "os/architecture" used to select from an image index
    """

    default_registry: str = DOCKER_HUB
    timeout: int = 30
    username: Optional[str] = None
    password: Optional[str] = None
    insecure_registries: Tuple[str, ...] = field(default_factory=tuple)
    platform: str = "linux/amd64"

    @property
    def credentials(self) -> Optional[Tuple[str, str]]:
        if self.username and self.password:
            return self.username, self.password
        return None

    def base_url(self, host: str) -> str:
        """Return the API base URL for a registry host."""
        if host == DOCKER_HUB:
            host = DOCKER_HUB_API_HOST
        scheme = "https"
        if host in self.insecure_registries or _hostname(host) in LOCAL_HOSTS:
            scheme = "http"
        return f"{scheme}://{host}"


class ByteStream(Protocol):
    """Readable byte stream; ``read`` returns b"" at end of content."""

    async def read(self, n: int = -1) -> bytes: ...


class LayerHandle(Protocol):
    """A layer of a remote image."""

    @property
    def descriptor(self) -> LayerDescriptor: ...

    def open_content(self) -> AsyncContextManager[ByteStream]: ...


class ImageHandle(Protocol):
    """A resolved remote image."""

    async def config(self) -> LayerHandle: ...

    async def layers(self) -> List[LayerHandle]: ...


class RegistrySource(Protocol):
    """Resolves image references to image handles."""

    async def resolve(self, reference: str) -> ImageHandle: ...


class ContentStore(Protocol):
    """Content-addressed local storage for layer blobs."""

    def path_for(self, digest: str) -> Path: ...

    async def contains(self, digest: str) -> bool: ...

    async def localize(self, digest: str, stream: ByteStream) -> Path: ...


def _hostname(host: str) -> str:
    if host.startswith("["):
        return host[1:].split("]", 1)[0]
    return host.split(":", 1)[0]
