"""Streaming content hashing for the file index.

Files are read in fixed-size chunks, so hashing cost grows with file size and
never with the size of the working set.
"""

import hashlib
from pathlib import Path
from typing import Union

from .paths import extended_path

CHUNK_SIZE = 128 * 1024

SUPPORTED_ALGORITHMS = ("sha256", "sha1")


def new_hasher(algorithm: str):
    """Create a hashlib object for a supported algorithm.

    Raises:
        ValueError: If the algorithm is not supported
    """
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(
            f"Unsupported hash algorithm '{algorithm}' "
            f"(expected one of: {', '.join(SUPPORTED_ALGORITHMS)})"
        )
    return hashlib.new(algorithm)


def compute_file_hash(path: Union[str, Path], algorithm: str = "sha256") -> str:
    """Compute the hex digest of a file's contents.

    Simple byte-for-byte hashing - any change invalidates the digest.

    Args:
        path: Path to file to hash
        algorithm: ``sha256`` or ``sha1``

    Returns:
        Hex digest (no algorithm prefix; the index records the algorithm)

    Raises:
        OSError: If the file cannot be opened or read
    """
    hasher = new_hasher(algorithm)
    with open(extended_path(path), "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


__all__ = [
    "CHUNK_SIZE",
    "SUPPORTED_ALGORITHMS",
    "compute_file_hash",
    "new_hasher",
]
