import time
import traceback
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Optional

import requests

from aptfanout.config import (APTFANOUT_USER_AGENT, CHUNK_SIZE, CONNECT_TIMEOUT,
                              DOWNLOAD_DEBUG, DOWNLOAD_TIMEOUT, READ_TIMEOUT)
from aptfanout.dispatch import Lane
from aptfanout.errors import ErrorKind, MirrorError
from aptfanout.packages import FileRecord
from aptfanout.verify import LocalFileState, check_local_file


def new_session(user_agent: str = APTFANOUT_USER_AGENT) -> requests.Session:
    session = requests.Session()
    session.headers['User-Agent'] = user_agent
    return session


@dataclass
class WorkerStats:
    source: str
    fetched: int = 0
    skipped: int = 0
    failed: int = 0
    bytes_downloaded: int = 0


class DownloadWorker:
    """
    Drains one lane, downloading from one mirror. Each record is checked
    against the local copy first; only missing, truncated or corrupted
    files are transferred. A failed file is logged and left for the next run.
    """

    def __init__(self, source: str, lane: Lane, dest_dir: Path = Path('.'),
                 session: Optional[requests.Session] = None,
                 connect_timeout: float = CONNECT_TIMEOUT,
                 read_timeout: float = READ_TIMEOUT,
                 download_timeout: float = DOWNLOAD_TIMEOUT,
                 chunk_size: int = CHUNK_SIZE):
        self.source = source
        self.lane = lane
        self.dest_dir = Path(dest_dir)
        self.session = session if session is not None else new_session()
        self.timeout = (connect_timeout, read_timeout)
        self.download_timeout = download_timeout
        self.chunk_size = chunk_size
        self.stats = WorkerStats(source=source)

    def url_for(self, record: FileRecord) -> str:
        return f"{self.source.rstrip('/')}/{record.relative_path}"

    def local_path(self, record: FileRecord) -> Path:
        # lexical only; symlinks below dest_dir are followed
        relative = PurePosixPath(record.relative_path)
        if not relative.parts or relative.is_absolute() or ".." in relative.parts:
            raise MirrorError(
                ErrorKind.WRITE_FAILED,
                "refusing to write outside the mirror directory",
                path=record.relative_path)
        return self.dest_dir / record.relative_path

    def run(self) -> WorkerStats:
        for record in self.lane:
            try:
                self.conditional_download(record)
            except Exception as e:
                self.stats.failed += 1
                print(f"ERROR: downloading {record.name} failed: {e}", flush=True)
                if DOWNLOAD_DEBUG:
                    traceback.print_exc()
        print(
            f"Worker for {self.source} finished: {self.stats.fetched} fetched, "
            f"{self.stats.skipped} up to date, {self.stats.failed} failed, "
            f"{self.stats.bytes_downloaded / (1024*1024):.2f} MB downloaded.",
            flush=True)
        return self.stats

    def conditional_download(self, record: FileRecord) -> bool:
        """Returns True if the file was transferred."""
        dst_file = self.local_path(record)
        state = check_local_file(dst_file, record.size, record.digest)
        if state is LocalFileState.VERIFIED:
            if DOWNLOAD_DEBUG:
                print(f"Skipping verified file: {record.relative_path}", flush=True)
            self.stats.skipped += 1
            return False

        if state is LocalFileState.MISSING:
            dst_file.parent.mkdir(parents=True, exist_ok=True)
        elif state is LocalFileState.SIZE_MISMATCH:
            print(f"WARN: size mismatch for {dst_file}, re-download", flush=True)
        else:
            print(f"WARN: bad sha256 for {dst_file}, re-download", flush=True)

        self.download_file(record, dst_file)
        if check_local_file(dst_file, record.size, record.digest) is not LocalFileState.VERIFIED:
            raise MirrorError(
                ErrorKind.DIGEST_MISMATCH,
                f"downloaded file does not match index for {record.name}",
                url=self.url_for(record), path=str(dst_file))
        self.stats.fetched += 1
        return True

    def download_file(self, record: FileRecord, dst_file: Path) -> int:
        url = self.url_for(record)
        print(f"Downloading {record.name} ({record.version}) from {url}", flush=True)
        start = time.time()
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as r:
                r.raise_for_status()
                try:
                    total_size = int(r.headers.get('content-length', ''))
                except ValueError:
                    raise MirrorError(
                        ErrorKind.CONTENT_LENGTH_MISSING,
                        "failed to get content length", url=url) from None
                downloaded = 0
                try:
                    f = dst_file.open('wb')
                except OSError as e:
                    raise MirrorError(
                        ErrorKind.WRITE_FAILED, f"cannot create file: {e}",
                        url=url, path=str(dst_file)) from e
                with f:
                    for chunk in r.iter_content(chunk_size=self.chunk_size):
                        if time.time() - start > self.download_timeout:
                            raise MirrorError(
                                ErrorKind.FETCH_FAILED,
                                f"download exceeded {self.download_timeout} seconds",
                                url=url)
                        if not chunk: continue  # filter out keep-alive new chunks
                        try:
                            f.write(chunk)
                        except OSError as e:
                            raise MirrorError(
                                ErrorKind.WRITE_FAILED, f"error while writing to file: {e}",
                                url=url, path=str(dst_file)) from e
                        downloaded = min(downloaded + len(chunk), total_size)
                        self.stats.bytes_downloaded += len(chunk)
        except requests.RequestException as e:
            raise MirrorError(ErrorKind.FETCH_FAILED, f"failed to GET: {e}", url=url) from e

        if DOWNLOAD_DEBUG:
            print(
                f"Downloaded {url} to {dst_file} in {time.time() - start:.2f} seconds.",
                flush=True)
        return downloaded
