import bz2
import gzip
import lzma
import zlib
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from aptfanout.errors import ErrorKind, MirrorError

SHA256_HEX_LENGTH = 64
MAX_SIZE = 2**64 - 1

FIELD_PACKAGE = "Package: "
FIELD_VERSION = "Version: "
FIELD_FILENAME = "Filename: "
FIELD_SHA256 = "SHA256: "
FIELD_SIZE = "Size: "

DECOMPRESSORS: Dict[str, Callable[[bytes], bytes]] = {
    '.gz': gzip.decompress,
    '.xz': lzma.decompress,
    '.bz2': bz2.decompress,
    '': lambda content: content,
}


@dataclass(frozen=True)
class FileRecord:
    name: str
    version: str
    relative_path: str
    digest: str
    size: int


class RecordAccumulator:
    """
    Collects the fields of one Packages block.

    A block is only known to be over when the next "Package: " line arrives,
    so observe() returns the previous record at that point. finalize()
    returns whatever the current block holds if it is complete.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self.name: Optional[str] = None
        self.version = ""
        self.relative_path: Optional[str] = None
        self.digest = ""
        self.size: Optional[int] = None

    def is_complete(self) -> bool:
        return (self.name is not None
                and self.relative_path is not None
                and self.size is not None
                and len(self.digest) == SHA256_HEX_LENGTH)

    def finalize(self) -> Optional[FileRecord]:
        if not self.is_complete():
            return None
        return FileRecord(
            name=self.name,
            version=self.version,
            relative_path=self.relative_path,
            digest=self.digest,
            size=self.size,
        )

    def observe(self, line: str) -> Optional[FileRecord]:
        emitted = None
        if line.startswith(FIELD_PACKAGE):
            emitted = self.finalize()
            self.reset()
            self.name = line[len(FIELD_PACKAGE):].strip()
        if line.startswith(FIELD_VERSION):
            self.version = line[len(FIELD_VERSION):].strip()
        if line.startswith(FIELD_FILENAME):
            self.relative_path = line[len(FIELD_FILENAME):].strip()
        if line.startswith(FIELD_SHA256):
            self.digest = line[len(FIELD_SHA256):].strip()
        if line.startswith(FIELD_SIZE):
            raw = line[len(FIELD_SIZE):].strip()
            if (not (raw.isascii() and raw.isdigit())
                    or len(raw) > len(str(MAX_SIZE)) or int(raw) > MAX_SIZE):
                raise MirrorError(
                    ErrorKind.DECODE_FAILED,
                    f"invalid Size field {raw!r} for package {self.name}")
            self.size = int(raw)
        return emitted


def parse_package_index(text: str, flush_tail: bool = False) -> List[FileRecord]:
    """
    Turns the text of a Packages file into FileRecords, in index order.
    Unless flush_tail is set the final block is not emitted, matching the
    download set of earlier releases of this tool.
    """
    records = []
    accumulator = RecordAccumulator()
    for line in text.split("\n"):
        record = accumulator.observe(line.rstrip("\r"))
        if record is not None:
            records.append(record)
    if flush_tail:
        record = accumulator.finalize()
        if record is not None:
            records.append(record)
    return records


def decompress_index(content: bytes, suffix: str = '.gz') -> str:
    if suffix not in DECOMPRESSORS:
        raise MirrorError(
            ErrorKind.DECODE_FAILED,
            f"unsupported compression format {suffix!r}")
    try:
        raw = DECOMPRESSORS[suffix](content)
    except (OSError, EOFError, zlib.error, lzma.LZMAError, ValueError) as e:
        raise MirrorError(
            ErrorKind.DECODE_FAILED, f"cannot decompress index: {e}") from e
    try:
        return raw.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MirrorError(
            ErrorKind.DECODE_FAILED, f"index is not valid UTF-8: {e}") from e


def decode_package_index(content: bytes, suffix: str = '.gz',
                         flush_tail: bool = False) -> List[FileRecord]:
    return parse_package_index(decompress_index(content, suffix), flush_tail=flush_tail)
