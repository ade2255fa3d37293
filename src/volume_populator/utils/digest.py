"""Content digest calculation and validation utilities."""

import hashlib
import re
from typing import Tuple, Union

from ..exceptions import ValidationError

# Digest format accepted by the local store (algorithm:hex)
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+:[a-f0-9]+$")

# Algorithms and their hex digest lengths
SUPPORTED_ALGORITHMS = {"sha256": 64, "sha384": 96, "sha512": 128}


def validate_digest(digest: str) -> bool:
    """Validate digest format.

    Args:
        digest: Digest string to validate (e.g. "sha256:4f3c...")

    Returns:
        True if the digest uses a supported algorithm and has a hex part
        of the right length
    """
    if not isinstance(digest, str) or not DIGEST_PATTERN.match(digest):
        return False

    algorithm, encoded = digest.split(":", 1)
    return SUPPORTED_ALGORITHMS.get(algorithm) == len(encoded)


def split_digest(digest: str) -> Tuple[str, str]:
    """Split a digest into its algorithm and hex parts.

    Raises:
        ValidationError: If the digest is malformed
    """
    if not validate_digest(digest):
        raise ValidationError(f"Invalid digest format: {digest}")
    algorithm, encoded = digest.split(":", 1)
    return algorithm, encoded


def new_hasher(digest: str):
    """Create an incremental hasher matching the algorithm of ``digest``."""
    algorithm, _ = split_digest(digest)
    return hashlib.new(algorithm)


def calculate_digest(data: Union[bytes, bytearray], algorithm: str = "sha256") -> str:
    """Calculate digest of data.

    Args:
        data: Data to hash
        algorithm: Hash algorithm (default: sha256)

    Returns:
        Digest string in format "algorithm:hex"

    Raises:
        ValidationError: If algorithm is not supported or data is not bytes-like
    """
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise ValidationError("Data must be bytes-like")

    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValidationError(f"Unsupported algorithm: {algorithm}")

    hasher = hashlib.new(algorithm)
    hasher.update(data)
    return f"{algorithm}:{hasher.hexdigest()}"
