from __future__ import annotations

from pathlib import Path

import pytest
import requests
import responses

from aptfanout.dispatch import Lane
from aptfanout.errors import ErrorKind, MirrorError
from aptfanout.packages import FileRecord
from aptfanout.worker import DownloadWorker
from helpers import record_for

MIRROR = "http://mirror.example/debian/"
CONTENT = b"\x7fELF pretend package payload" * 64


def make_worker(tmp_path: Path, records=()) -> DownloadWorker:
    lane = Lane(capacity=len(records) + 1)
    for record in records:
        lane.send(record)
    lane.close()
    return DownloadWorker(MIRROR, lane, tmp_path, download_timeout=30)


def serve(record: FileRecord, body: bytes = CONTENT, **kwargs) -> None:
    headers = {"Content-Length": str(len(body))}
    responses.add(responses.GET, f"http://mirror.example/debian/{record.relative_path}",
                  body=body, headers=headers, **kwargs)


@responses.activate
def test_missing_file_is_downloaded(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    serve(record)
    worker = make_worker(tmp_path)

    assert worker.conditional_download(record) is True

    target = tmp_path / record.relative_path
    assert target.read_bytes() == CONTENT
    assert worker.stats.fetched == 1
    assert worker.stats.bytes_downloaded == len(CONTENT)
    assert responses.calls[0].request.url == f"http://mirror.example/debian/{record.relative_path}"


@responses.activate
def test_size_mismatch_refetches(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    target = tmp_path / record.relative_path
    target.parent.mkdir(parents=True)
    target.write_bytes(CONTENT[:10])
    serve(record)
    worker = make_worker(tmp_path)

    assert worker.conditional_download(record) is True

    assert len(responses.calls) == 1
    assert target.read_bytes() == CONTENT


@responses.activate
def test_digest_mismatch_refetches(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    target = tmp_path / record.relative_path
    target.parent.mkdir(parents=True)
    target.write_bytes(b"!" + CONTENT[1:])
    serve(record)
    worker = make_worker(tmp_path)

    assert worker.conditional_download(record) is True

    assert len(responses.calls) == 1
    assert target.read_bytes() == CONTENT


@responses.activate
def test_verified_file_makes_no_request(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    record = FileRecord(record.name, record.version, record.relative_path,
                        record.digest.upper(), record.size)
    target = tmp_path / record.relative_path
    target.parent.mkdir(parents=True)
    target.write_bytes(CONTENT)
    worker = make_worker(tmp_path)

    assert worker.conditional_download(record) is False

    assert len(responses.calls) == 0
    assert worker.stats.skipped == 1


@responses.activate
def test_missing_content_length_is_reported(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    responses.add(responses.GET, f"http://mirror.example/debian/{record.relative_path}", body=CONTENT)
    worker = make_worker(tmp_path)

    with pytest.raises(MirrorError) as excinfo:
        worker.download_file(record, tmp_path / "foo.deb")

    assert excinfo.value.kind is ErrorKind.CONTENT_LENGTH_MISSING
    assert not (tmp_path / "foo.deb").exists()


@responses.activate
def test_http_error_is_fetch_failure(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    responses.add(responses.GET, f"http://mirror.example/debian/{record.relative_path}", status=404)
    worker = make_worker(tmp_path)

    with pytest.raises(MirrorError) as excinfo:
        worker.download_file(record, tmp_path / "foo.deb")

    assert excinfo.value.kind is ErrorKind.FETCH_FAILED
    assert excinfo.value.url.endswith(record.relative_path)


@responses.activate
def test_wrong_payload_is_digest_mismatch(tmp_path: Path) -> None:
    record = record_for("foo", CONTENT)
    serve(record, body=b"?" * len(CONTENT))
    worker = make_worker(tmp_path)

    with pytest.raises(MirrorError) as excinfo:
        worker.conditional_download(record)

    assert excinfo.value.kind is ErrorKind.DIGEST_MISMATCH
    assert worker.stats.fetched == 0


@responses.activate
def test_run_logs_failures_and_keeps_going(tmp_path: Path, capsys) -> None:
    broken = record_for("broken", b"broken")
    unreachable = record_for("unreachable", b"unreachable")
    good = record_for("good", CONTENT)
    serve(broken, body=b"wrong!")
    responses.add(responses.GET, f"http://mirror.example/debian/{unreachable.relative_path}",
                  body=requests.ConnectionError("connection refused"))
    serve(good)
    worker = make_worker(tmp_path, [broken, unreachable, good])

    stats = worker.run()

    assert (stats.fetched, stats.failed, stats.skipped) == (1, 2, 0)
    assert (tmp_path / good.relative_path).read_bytes() == CONTENT
    out = capsys.readouterr().out
    assert "downloading broken failed" in out
    assert "downloading unreachable failed" in out
    assert f"Worker for {MIRROR} finished" in out


@responses.activate
def test_records_processed_in_lane_order(tmp_path: Path) -> None:
    records = [record_for(f"pkg{i}", f"payload {i}".encode()) for i in range(5)]
    for record in records:
        serve(record, body=f"payload {record.name[3:]}".encode())
    worker = make_worker(tmp_path, records)

    worker.run()

    urls = [call.request.url for call in responses.calls]
    assert urls == [f"http://mirror.example/debian/{r.relative_path}" for r in records]


def test_path_outside_mirror_is_refused(tmp_path: Path) -> None:
    record = FileRecord("evil", "1", "../outside.deb", "0" * 64, 1)
    worker = make_worker(tmp_path)

    with pytest.raises(MirrorError) as excinfo:
        worker.local_path(record)

    assert excinfo.value.kind is ErrorKind.WRITE_FAILED


def test_url_joins_source_and_path_with_one_slash(tmp_path: Path) -> None:
    worker = make_worker(tmp_path)

    assert worker.url_for(record_for("foo", b"x")) == "http://mirror.example/debian/pool/main/f/foo/foo_1.0_amd64.deb"


@pytest.mark.parametrize("relative_path", ["/etc/outside.deb", "pool/../../outside.deb", ""])
def test_unsafe_paths_are_refused(tmp_path: Path, relative_path: str) -> None:
    record = FileRecord("evil", "1", relative_path, "0" * 64, 1)
    worker = make_worker(tmp_path)

    with pytest.raises(MirrorError):
        worker.local_path(record)


@responses.activate
def test_symlinked_pool_directory_is_written_through(tmp_path: Path) -> None:
    bigdisk = tmp_path / "bigdisk"
    bigdisk.mkdir()
    mirror = tmp_path / "mirror"
    mirror.mkdir()
    (mirror / "pool").symlink_to(bigdisk, target_is_directory=True)
    record = record_for("foo", CONTENT)
    serve(record)
    worker = make_worker(mirror, [record])

    stats = worker.run()

    assert (stats.fetched, stats.failed) == (1, 0)
    assert (bigdisk / "main/f/foo/foo_1.0_amd64.deb").read_bytes() == CONTENT
