import concurrent.futures
import hashlib
import traceback
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Tuple

import requests

from aptfanout.config import (CONNECT_TIMEOUT, DOWNLOAD_TIMEOUT, INDEX_DEBUG,
                              LANE_CAPACITY, READ_TIMEOUT)
from aptfanout.dispatch import DispatchRouter, Lane
from aptfanout.errors import ErrorKind, MirrorError, Stage, SyncAborted
from aptfanout.packages import FileRecord, decode_package_index
from aptfanout.release import parse_release_file
from aptfanout.worker import DownloadWorker, WorkerStats, new_session


class MirrorPool:
    """
    One lane and one download worker per mirror, run on a thread pool.
    Records go in through dispatch(); close() waits for every lane to drain.
    """

    def __init__(self, sources: List[str], dest_dir: Path = Path('.'),
                 lane_capacity: int = LANE_CAPACITY,
                 session_factory: Callable[[], requests.Session] = new_session,
                 connect_timeout: float = CONNECT_TIMEOUT,
                 read_timeout: float = READ_TIMEOUT,
                 download_timeout: float = DOWNLOAD_TIMEOUT):
        if not sources:
            raise ValueError("at least one mirror is required")
        self.lanes = [Lane(lane_capacity) for _ in sources]
        self.workers = [
            DownloadWorker(source, lane, dest_dir, session=session_factory(),
                           connect_timeout=connect_timeout,
                           read_timeout=read_timeout,
                           download_timeout=download_timeout)
            for source, lane in zip(sources, self.lanes)
        ]
        self.router = DispatchRouter(self.lanes)
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        self._futures: List[concurrent.futures.Future] = []

    def start(self):
        if self._executor is not None:
            return
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=len(self.workers), thread_name_prefix="aptfanout-lane")
        self._futures = [self._executor.submit(worker.run) for worker in self.workers]

    def dispatch(self, record: FileRecord) -> int:
        return self.router.dispatch(record)

    def close(self) -> List[WorkerStats]:
        """Close every lane, then join every worker, raising the first failure."""
        self.router.close()
        return self._join()

    def abort(self) -> int:
        """Drop queued records, close every lane and wait for in-flight files."""
        dropped = sum(lane.discard_pending() for lane in self.lanes)
        self.router.close()
        try:
            self._join()
        except SyncAborted as e:
            print(f"WARN: worker failed while aborting: {e.cause}", flush=True)
        return dropped

    def _join(self) -> List[WorkerStats]:
        results = []
        first_error = None
        for future in self._futures:
            try:
                results.append(future.result())
            except Exception as e:
                if first_error is None:
                    first_error = e
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
            for worker in self.workers:
                worker.session.close()
        self._futures = []
        if first_error is not None:
            raise SyncAborted(Stage.JOIN, first_error) from first_error
        return results


@dataclass
class SyncSummary:
    records: int = 0
    duplicates: int = 0
    workers: List[WorkerStats] = field(default_factory=list)

    @property
    def fetched(self) -> int:
        return sum(w.fetched for w in self.workers)

    @property
    def skipped(self) -> int:
        return sum(w.skipped for w in self.workers)

    @property
    def failed(self) -> int:
        return sum(w.failed for w in self.workers)

    @property
    def bytes_downloaded(self) -> int:
        return sum(w.bytes_downloaded for w in self.workers)


class Orchestrator:
    """
    Walks every distribution and (component, arch) pair in order, one index
    at a time, feeding decoded records into the pool.
    """

    def __init__(self, index_url: str, dists: List[str],
                 pairs: List[Tuple[str, str]], pool: MirrorPool,
                 session: Optional[requests.Session] = None,
                 flush_tail: bool = False, verify_index: bool = False,
                 connect_timeout: float = CONNECT_TIMEOUT,
                 read_timeout: float = READ_TIMEOUT):
        self.index_url = index_url.rstrip('/')
        self.dists = list(dists)
        self.pairs = list(pairs)
        self.pool = pool
        self.session = session if session is not None else new_session()
        self.flush_tail = flush_tail
        self.verify_index = verify_index
        self.timeout = (connect_timeout, read_timeout)
        self.release_digests: Dict[str, Dict[str, str]] = {}
        self._dispatched: Set[str] = set()
        self.summary = SyncSummary()

    def release_url(self, dist: str) -> str:
        return f"{self.index_url}/dists/{dist}/Release"

    @staticmethod
    def index_path(component: str, arch: str) -> str:
        """Packages path relative to the distribution directory."""
        return f"{component}/binary-{arch}/Packages.gz"

    def index_url_for(self, dist: str, component: str, arch: str) -> str:
        return f"{self.index_url}/dists/{dist}/{self.index_path(component, arch)}"

    def _get(self, url: str) -> bytes:
        try:
            r = self.session.get(url, timeout=self.timeout)
            r.raise_for_status()
            return r.content
        except requests.RequestException as e:
            raise MirrorError(ErrorKind.FETCH_FAILED, f"failed to GET: {e}", url=url) from e

    def fetch_release(self, dist: str) -> Dict[str, str]:
        url = self.release_url(dist)
        try:
            content = self._get(url)
        except MirrorError as e:
            raise SyncAborted(Stage.RELEASE_FETCH, e) from e
        # TODO: verify Release.gpg once signing keys are configurable
        try:
            digests = parse_release_file(content.decode('utf-8', errors='replace'))
        except MirrorError as e:
            e.url = url
            raise SyncAborted(Stage.RELEASE_PARSE, e) from e
        if INDEX_DEBUG:
            print(f"INDEX_DEBUG: {len(digests)} sha256 entries in {url}", flush=True)
        return digests

    def fetch_index(self, dist: str, component: str, arch: str,
                    digests: Dict[str, str]) -> List[FileRecord]:
        url = self.index_url_for(dist, component, arch)
        try:
            content = self._get(url)
        except MirrorError as e:
            raise SyncAborted(Stage.INDEX_FETCH, e) from e
        try:
            if self.verify_index:
                self._check_index_digest(url, component, arch, content, digests)
            records = decode_package_index(content, '.gz', flush_tail=self.flush_tail)
        except MirrorError as e:
            e.url = e.url or url
            raise SyncAborted(Stage.DECODE, e) from e
        print(f"Decoded {len(records)} packages from {url}", flush=True)
        return records

    def _check_index_digest(self, url: str, component: str, arch: str,
                            content: bytes, digests: Dict[str, str]):
        expected = digests.get(self.index_path(component, arch))
        if expected is None:
            print(f"WARN: {url} is not listed in Release, not verified", flush=True)
            return
        actual = hashlib.sha256(content).hexdigest()
        if actual != expected.lower():
            raise MirrorError(
                ErrorKind.DIGEST_MISMATCH,
                f"index sha256 {actual} does not match Release {expected}",
                url=url)

    def dispatch_records(self, records: List[FileRecord]):
        for record in records:
            if record.relative_path in self._dispatched:
                # e.g. Architecture: all packages listed under every binary-<arch>
                self.summary.duplicates += 1
                if INDEX_DEBUG:
                    print(f"INDEX_DEBUG: already dispatched {record.relative_path}", flush=True)
                continue
            self._dispatched.add(record.relative_path)
            self.pool.dispatch(record)
            self.summary.records += 1

    def run(self) -> SyncSummary:
        self.pool.start()
        try:
            for dist in self.dists:
                print(f"Fetching Release for {dist}...", flush=True)
                digests = self.fetch_release(dist)
                self.release_digests[dist] = digests
                for component, arch in self.pairs:
                    print(f"Fetching package index {dist}/{component}/{arch}...", flush=True)
                    records = self.fetch_index(dist, component, arch, digests)
                    self.dispatch_records(records)
        except BaseException:
            if INDEX_DEBUG:
                traceback.print_exc()
            dropped = self.pool.abort()
            print(f"Sync aborted, {dropped} queued files dropped.", flush=True)
            raise
        finally:
            self.session.close()
        self.summary.workers = self.pool.close()
        return self.summary
