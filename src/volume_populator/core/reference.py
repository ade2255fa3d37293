"""Image reference parsing."""

import re
from dataclasses import dataclass
from typing import Optional

from ..exceptions import ValidationError
from ..utils.digest import validate_digest
from .types import DOCKER_HUB

_REPOSITORY_PATTERN = re.compile(r"^[a-z0-9]+(?:[._-]+[a-z0-9]+)*(?:/[a-z0-9]+(?:[._-]+[a-z0-9]+)*)*$")
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")


@dataclass(frozen=True)
class ImageReference:
    """Parsed image reference."""

    registry: str
    repository: str
    tag: Optional[str] = None
    digest: Optional[str] = None

    @property
    def reference(self) -> str:
        """Manifest reference: the digest when pinned, otherwise the tag."""
        return self.digest or self.tag or "latest"

    def __str__(self) -> str:
        name = f"{self.registry}/{self.repository}"
        if self.tag:
            name = f"{name}:{self.tag}"
        if self.digest:
            name = f"{name}@{self.digest}"
        return name


def _is_registry_host(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_reference(reference: str, default_registry: str = DOCKER_HUB) -> ImageReference:
    """Parse an image reference into registry, repository, tag and digest.

    Args:
        reference: Image reference
            - "os:v1" (default registry, tag v1)
            - "localhost:5000/team/os:v1" (registry with port)
            - "ghcr.io/team/os@sha256:..." (pinned by digest)
        default_registry: Registry used when the reference names none

    Returns:
        ImageReference: parsed reference; the tag defaults to "latest" when
        neither tag nor digest is given

    Raises:
        ValidationError: If the reference is malformed

    Examples:
        ref = parse_reference("localhost:5000/myapp:latest")
        # ref.registry == "localhost:5000", ref.repository == "myapp"
    """
    if not isinstance(reference, str) or not reference.strip():
        raise ValidationError("image reference must be a non-empty string")

    remainder = reference.strip()

    digest = None
    if "@" in remainder:
        remainder, digest = remainder.split("@", 1)
        if not validate_digest(digest):
            raise ValidationError(f"invalid digest in reference {reference}: {digest}")

    registry = default_registry
    first, sep, rest = remainder.partition("/")
    if sep and _is_registry_host(first):
        registry, remainder = first, rest

    # Split only on the last ':' after the final '/', registry ports are gone by now
    tag = None
    name, sep, candidate = remainder.rpartition(":")
    if sep and "/" not in candidate:
        remainder, tag = name, candidate
        if not _TAG_PATTERN.match(tag):
            raise ValidationError(f"invalid tag in reference {reference}: {tag!r}")

    if not _REPOSITORY_PATTERN.match(remainder):
        raise ValidationError(f"invalid repository in reference {reference}: {remainder!r}")

    if registry == DOCKER_HUB and "/" not in remainder:
        remainder = f"library/{remainder}"

    if tag is None and digest is None:
        tag = "latest"

    return ImageReference(registry=registry, repository=remainder, tag=tag, digest=digest)
