import enum
from typing import Optional


class ErrorKind(enum.Enum):
    FETCH_FAILED = "fetch_failed"
    CONTENT_LENGTH_MISSING = "content_length_missing"
    WRITE_FAILED = "write_failed"
    DIGEST_MISMATCH = "digest_mismatch"
    DECODE_FAILED = "decode_failed"
    PARSE_INCONSISTENCY = "parse_inconsistency"


class Stage(enum.Enum):
    """Orchestrator stage that aborted a sync."""
    RELEASE_FETCH = "release fetch"
    RELEASE_PARSE = "release parse"
    INDEX_FETCH = "index fetch"
    DECODE = "decode"
    JOIN = "join"


class MirrorError(Exception):
    """
    A failure with a kind and the URL and/or local path it concerns.
    Workers log and swallow these; the orchestrator turns them into SyncAborted.
    """

    def __init__(self, kind: ErrorKind, message: str,
                 url: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.url = url
        self.path = path

    def __str__(self) -> str:
        where = [f"{k}={v}" for k, v in (("url", self.url), ("path", self.path)) if v]
        if where:
            return f"[{self.kind.value}] {self.message} ({', '.join(where)})"
        return f"[{self.kind.value}] {self.message}"


class SyncAborted(Exception):
    def __init__(self, stage: Stage, cause: BaseException):
        super().__init__(f"sync aborted during {stage.value}: {cause}")
        self.stage = stage
        self.cause = cause
