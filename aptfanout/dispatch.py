import queue
import threading
from typing import Iterator, List

from aptfanout.config import LANE_CAPACITY
from aptfanout.packages import FileRecord

_CLOSED = object()


class Lane:
    """
    Bounded FIFO of FileRecords consumed by a single download worker.
    send() blocks while the lane is full. Iterating yields records until
    the lane is closed and drained.
    """

    def __init__(self, capacity: int = LANE_CAPACITY):
        if capacity < 1:
            raise ValueError(f"lane capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._queue = queue.Queue(maxsize=capacity)
        self._lock = threading.Lock()
        self.closed = False

    def send(self, record: FileRecord):
        if self.closed:
            raise ValueError("send on closed lane")
        self._queue.put(record)

    def close(self):
        with self._lock:
            if self.closed:
                return
            self.closed = True
        # the marker waits for room like any record so nothing queued is lost
        self._queue.put(_CLOSED)

    def discard_pending(self) -> int:
        """Drop queued records that no worker has picked up yet."""
        dropped = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return dropped
            if item is _CLOSED:
                # keep the marker for the consumer
                self._queue.put(item)
                return dropped
            dropped += 1

    def qsize(self) -> int:
        return self._queue.qsize()

    def __iter__(self) -> Iterator[FileRecord]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item


class DispatchRouter:
    """Hands records to lanes in strict round-robin order."""

    def __init__(self, lanes: List[Lane]):
        if not lanes:
            raise ValueError("at least one lane is required")
        self.lanes = list(lanes)
        self.cursor = 0

    def dispatch(self, record: FileRecord) -> int:
        index = self.cursor
        self.lanes[index].send(record)
        self.cursor = (index + 1) % len(self.lanes)
        return index

    def close(self):
        for lane in self.lanes:
            lane.close()
