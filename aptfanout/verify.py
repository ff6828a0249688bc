import enum
import hashlib
from pathlib import Path

from aptfanout.config import CHUNK_SIZE


class LocalFileState(enum.Enum):
    MISSING = "missing"
    SIZE_MISMATCH = "size_mismatch"
    DIGEST_MISMATCH = "digest_mismatch"
    VERIFIED = "verified"

    @property
    def needs_download(self) -> bool:
        return self is not LocalFileState.VERIFIED


def sizes_match(expected: int, actual: int) -> bool:
    return expected == actual


def sha256_file(filepath: Path, chunk_size: int = CHUNK_SIZE) -> str:
    hashlib_algo = hashlib.sha256()
    with filepath.open("rb") as f:
        for block in iter(lambda: f.read(chunk_size), b""):
            hashlib_algo.update(block)
    return hashlib_algo.hexdigest()


def digest_matches(filepath: Path, expected_digest: str) -> bool:
    """Hash the whole file; the comparison ignores hex case."""
    return sha256_file(filepath).lower() == expected_digest.lower()


def check_local_file(filepath: Path, expected_size: int, expected_digest: str) -> LocalFileState:
    """
    Classify the local copy of a file. The size check runs first so a stale
    or partial file is never hashed.
    """
    if not filepath.is_file():
        return LocalFileState.MISSING
    if not sizes_match(expected_size, filepath.stat().st_size):
        return LocalFileState.SIZE_MISMATCH
    if not digest_matches(filepath, expected_digest):
        return LocalFileState.DIGEST_MISMATCH
    return LocalFileState.VERIFIED
