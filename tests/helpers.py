"""Builders for Packages indexes and records used across the tests."""
from __future__ import annotations

import gzip
import hashlib
from typing import Iterable

from aptfanout.packages import FileRecord


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def package_block(name: str, content: bytes, version: str = "1.0",
                  filename: str | None = None) -> str:
    filename = filename or f"pool/main/{name[0]}/{name}/{name}_{version}_amd64.deb"
    return (
        f"Package: {name}\n"
        f"Version: {version}\n"
        f"Architecture: amd64\n"
        f"Filename: {filename}\n"
        f"Size: {len(content)}\n"
        f"SHA256: {sha256_hex(content)}\n"
        f"Description: the {name} package\n"
    )


def packages_text(blocks: Iterable[str]) -> str:
    return "\n".join(blocks) + "\n"


def packages_gz(blocks: Iterable[str]) -> bytes:
    return gzip.compress(packages_text(blocks).encode("utf-8"))


def record_for(name: str, content: bytes, version: str = "1.0") -> FileRecord:
    return FileRecord(
        name=name,
        version=version,
        relative_path=f"pool/main/{name[0]}/{name}/{name}_{version}_amd64.deb",
        digest=sha256_hex(content),
        size=len(content),
    )
