"""Fan-out mirror for Debian-style package repositories."""
from aptfanout.errors import ErrorKind, MirrorError, Stage, SyncAborted
from aptfanout.packages import FileRecord, decode_package_index
from aptfanout.release import parse_release_file

__version__ = "1.0.0"

__all__ = [
    "ErrorKind",
    "FileRecord",
    "MirrorError",
    "Stage",
    "SyncAborted",
    "decode_package_index",
    "parse_release_file",
]
