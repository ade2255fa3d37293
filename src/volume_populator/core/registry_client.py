"""OCI distribution API async client used to pull bootable images."""

import asyncio
import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, List, Optional, Tuple

import aiohttp

from ..exceptions import (
    AuthenticationError,
    BlobError,
    ImageNotFoundError,
    ManifestError,
    RegistryConnectionError,
    RegistryError,
)
from ..models import LayerDescriptor
from .reference import ImageReference, parse_reference
from .types import RegistryConfig

logger = logging.getLogger(__name__)

OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"

MANIFEST_ACCEPT = ", ".join([OCI_MANIFEST, OCI_INDEX, DOCKER_MANIFEST, DOCKER_MANIFEST_LIST])
INDEX_MEDIA_TYPES = (OCI_INDEX, DOCKER_MANIFEST_LIST)

_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def _descriptor(data: Dict) -> LayerDescriptor:
    try:
        return LayerDescriptor(
            digest=data["digest"],
            media_type=data.get("mediaType", ""),
            size=int(data.get("size", 0)),
        )
    except (KeyError, TypeError, ValueError) as e:
        raise ManifestError(f"Invalid descriptor in manifest: {data!r}") from e


class BlobStream:
    """Blob response body; transport failures surface as BlobError."""

    def __init__(self, content: aiohttp.StreamReader, ref: ImageReference, digest: str) -> None:
        self._content = content
        self._ref = ref
        self._digest = digest

    async def read(self, n: int = -1) -> bytes:
        try:
            return await self._content.read(n)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise BlobError(
                f"Failed to read blob {self._digest} of {self._ref.repository}: {e}"
            ) from e


class RemoteLayer:
    """Layer of an image stored in a remote registry."""

    def __init__(
        self, client: "RegistryClient", ref: ImageReference, descriptor: LayerDescriptor
    ) -> None:
        self._client = client
        self._ref = ref
        self._descriptor = descriptor

    @property
    def descriptor(self) -> LayerDescriptor:
        return self._descriptor

    def open_content(self):
        """Open the layer blob as a byte stream (async context manager)."""
        return self._client.open_blob(self._ref, self._descriptor.digest)

    def __repr__(self) -> str:
        return f"RemoteLayer({self._ref.repository}@{self._descriptor.digest})"


class RemoteImage:
    """Image manifest resolved from a remote registry."""

    def __init__(
        self,
        client: "RegistryClient",
        ref: ImageReference,
        manifest: Dict,
        digest: Optional[str] = None,
    ) -> None:
        self._client = client
        self.ref = ref
        self.manifest = manifest
        self.digest = digest

    async def config(self) -> RemoteLayer:
        config = self.manifest.get("config")
        if not isinstance(config, dict):
            raise ManifestError(f"Manifest of {self.ref} has no config descriptor")
        return RemoteLayer(self._client, self.ref, _descriptor(config))

    async def layers(self) -> List[RemoteLayer]:
        layers = self.manifest.get("layers")
        if not isinstance(layers, list):
            raise ManifestError(f"Manifest of {self.ref} has no layer list")
        return [RemoteLayer(self._client, self.ref, _descriptor(layer)) for layer in layers]


class RegistryClient:
    """OCI registry async client for pulling image manifests and blobs."""

    def __init__(
        self,
        config: Optional[RegistryConfig] = None,
        connector: Optional[aiohttp.TCPConnector] = None,
    ) -> None:
        """Initialize the registry client.

        Args:
            config: Registry access settings
            connector: aiohttp connector for connection pooling
        """
        self.config = config or RegistryConfig()
        self.connector = connector
        self.session: Optional[aiohttp.ClientSession] = None
        self._tokens: Dict[Tuple[str, str], str] = {}

    async def __aenter__(self) -> "RegistryClient":
        """Enter async context manager."""
        if not self.session:
            # No total timeout: blob downloads may take arbitrarily long
            self.session = aiohttp.ClientSession(
                connector=self.connector,
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    connect=self.config.timeout,
                    sock_read=self.config.timeout,
                ),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context manager."""
        await self.close()

    async def close(self) -> None:
        """Close the client session."""
        if self.session and not self.session.closed:
            await self.session.close()
        self.session = None
        self._tokens.clear()

    async def ping(self, registry: Optional[str] = None) -> bool:
        """Check if a registry answers on the v2 API.

        Returns:
            True if the registry responds with 200 or asks for authentication
        """
        host = registry or self.config.default_registry
        try:
            async with self._require_session().get(
                f"{self.config.base_url(host)}/v2/"
            ) as resp:
                return resp.status in (200, 401)
        except aiohttp.ClientError:
            return False

    async def resolve(self, reference: str) -> RemoteImage:
        """Resolve an image reference to its image manifest.

        Args:
            reference: Image reference (e.g. "ghcr.io/team/os:v1")

        Returns:
            RemoteImage for the platform configured in RegistryConfig

        Raises:
            ValidationError: If the reference is malformed
            ImageNotFoundError: If the registry does not know the reference
            ManifestError: If the manifest cannot be retrieved or decoded
            RegistryConnectionError: If the registry is unreachable
        """
        ref = parse_reference(reference, self.config.default_registry)
        manifest, digest = await self.get_manifest(ref, ref.reference)

        if manifest.get("mediaType") in INDEX_MEDIA_TYPES or "manifests" in manifest:
            platform_digest = self._select_platform(ref, manifest)
            logger.debug("Selected %s for platform %s", platform_digest, self.config.platform)
            manifest, digest = await self.get_manifest(ref, platform_digest)

        logger.debug("Resolved %s to %s", reference, digest)
        return RemoteImage(self, ref, manifest, digest)

    async def get_manifest(
        self, ref: ImageReference, reference: str
    ) -> Tuple[Dict, Optional[str]]:
        """Retrieve a manifest from the registry.

        Args:
            ref: Parsed image reference naming registry and repository
            reference: Tag or digest to fetch

        Returns:
            Manifest dictionary and its digest (when reported by the registry)

        Raises:
            ImageNotFoundError: If the manifest does not exist
            ManifestError: If retrieval fails
        """
        resp = await self._get(ref, f"manifests/{reference}", {"Accept": MANIFEST_ACCEPT})
        async with resp:
            if resp.status == 404:
                raise ImageNotFoundError(
                    f"Image {ref.registry}/{ref.repository}:{reference} not found"
                )
            if resp.status != 200:
                raise ManifestError(
                    f"Failed to get manifest {ref.repository}:{reference}: HTTP {resp.status}"
                )
            try:
                manifest = await resp.json(content_type=None)
            except (aiohttp.ClientError, ValueError) as e:
                raise ManifestError(f"Failed to decode manifest of {ref}: {e}") from e
            digest = resp.headers.get("Docker-Content-Digest")

        if not isinstance(manifest, dict):
            raise ManifestError(f"Manifest of {ref} is not a JSON object")
        return manifest, digest

    @asynccontextmanager
    async def open_blob(self, ref: ImageReference, digest: str) -> AsyncIterator[BlobStream]:
        """Open a blob for streaming.

        Yields:
            The response body stream; ``read(n)`` returns b"" at the end

        Raises:
            BlobError: If the blob cannot be fetched or its transfer breaks off
        """
        resp = await self._get(ref, f"blobs/{digest}")
        async with resp:
            if resp.status != 200:
                raise BlobError(
                    f"Failed to get blob {digest} of {ref.repository}: HTTP {resp.status}"
                )
            yield BlobStream(resp.content, ref, digest)

    def _select_platform(self, ref: ImageReference, index: Dict) -> str:
        os_name, _, architecture = self.config.platform.partition("/")
        entries = index.get("manifests") or []
        for entry in entries:
            platform = entry.get("platform") or {}
            if platform.get("os") == os_name and platform.get("architecture") == architecture:
                return entry["digest"]
        raise ManifestError(
            f"Image index of {ref} has no manifest for platform {self.config.platform}"
        )

    def _require_session(self) -> aiohttp.ClientSession:
        if not self.session:
            raise RegistryError("Client session not started, use 'async with RegistryClient(...)'")
        return self.session

    def _headers(self, ref: ImageReference, headers: Optional[Dict[str, str]]) -> Dict[str, str]:
        merged = dict(headers or {})
        token = self._tokens.get((ref.registry, ref.repository))
        if token:
            merged["Authorization"] = token
        return merged

    async def _get(
        self, ref: ImageReference, path: str, headers: Optional[Dict[str, str]] = None
    ) -> aiohttp.ClientResponse:
        """Issue a GET against the repository, answering one auth challenge."""
        session = self._require_session()
        url = f"{self.config.base_url(ref.registry)}/v2/{ref.repository}/{path}"
        try:
            resp = await session.get(url, headers=self._headers(ref, headers))
            if resp.status == 401:
                challenge = resp.headers.get("WWW-Authenticate", "")
                resp.release()
                await self._authenticate(ref, challenge)
                resp = await session.get(url, headers=self._headers(ref, headers))
        except aiohttp.ClientError as e:
            raise RegistryConnectionError(
                f"Failed to reach registry {ref.registry}: {e}"
            ) from e

        if resp.status == 401:
            resp.release()
            raise AuthenticationError(f"Registry {ref.registry} denied access to {ref.repository}")
        return resp

    async def _authenticate(self, ref: ImageReference, challenge: str) -> None:
        scheme, _, params = challenge.partition(" ")
        credentials = self.config.credentials

        if scheme.lower() == "basic":
            if not credentials:
                raise AuthenticationError(f"Registry {ref.registry} requires credentials")
            auth = aiohttp.BasicAuth(*credentials)
            self._tokens[(ref.registry, ref.repository)] = auth.encode()
            return

        if scheme.lower() != "bearer":
            raise AuthenticationError(
                f"Unsupported authentication challenge from {ref.registry}: {challenge!r}"
            )

        values = dict(_CHALLENGE_PARAM.findall(params))
        realm = values.pop("realm", None)
        if not realm:
            raise AuthenticationError(f"Bearer challenge from {ref.registry} has no realm")
        query = {"service": values.get("service", ref.registry)}
        query["scope"] = values.get("scope", f"repository:{ref.repository}:pull")

        auth = aiohttp.BasicAuth(*credentials) if credentials else None
        try:
            async with self._require_session().get(realm, params=query, auth=auth) as resp:
                if resp.status != 200:
                    raise AuthenticationError(
                        f"Token request to {realm} failed: HTTP {resp.status}"
                    )
                data = await resp.json(content_type=None)
        except ValueError as e:
            raise AuthenticationError(f"Token service {realm} returned invalid JSON: {e}") from e
        except aiohttp.ClientError as e:
            raise RegistryConnectionError(f"Failed to reach token service {realm}: {e}") from e

        token = None
        if isinstance(data, dict):
            token = data.get("token") or data.get("access_token")
        if not token:
            raise AuthenticationError(f"Token service {realm} returned no token")
        self._tokens[(ref.registry, ref.repository)] = f"Bearer {token}"
