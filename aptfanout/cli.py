import argparse
import sys
import time
from pathlib import Path

from aptfanout.config import (DEFAULT_ARCHS, DEFAULT_COMPONENTS, DEFAULT_DISTS,
                              FLUSH_TAIL, INDEX_URL, LANE_CAPACITY, MIRROR_LIST,
                              VERIFY_INDEX, check_args, component_arch_pairs,
                              replace_os_template)
from aptfanout.errors import SyncAborted
from aptfanout.mirror import MirrorPool, Orchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Fetch the packages of an APT repository from a pool of mirrors.")
    parser.add_argument("os_version", type=str, nargs='?', default=','.join(DEFAULT_DISTS),
                        help="Comma-separated list of OS versions/codenames or templates (e.g., bookworm,@ubuntu-lts)")
    parser.add_argument("component", type=str, nargs='?', default=','.join(DEFAULT_COMPONENTS),
                        help="Comma-separated list of components (e.g., main,contrib,non-free)")
    parser.add_argument("arch", type=str, nargs='?', default=','.join(DEFAULT_ARCHS),
                        help="Comma-separated list of architectures (e.g., amd64,i386,arm64)")
    parser.add_argument("working_dir", type=Path, nargs='?', default=Path('.'),
                        help="Directory the package files are written to")
    parser.add_argument("--index-url", type=str, default=INDEX_URL,
                        help="Repository the Release and Packages files are read from")
    parser.add_argument("--mirror", action='append', dest='mirrors',
                        help="Mirror to download package files from; repeat for more lanes")
    parser.add_argument("--lane-capacity", type=int, default=LANE_CAPACITY,
                        help="Records queued per mirror before dispatch blocks")
    parser.add_argument("--flush-tail", action='store_true', default=FLUSH_TAIL,
                        help="Also fetch the last package of every index")
    parser.add_argument("--verify-index", action='store_true', default=VERIFY_INDEX,
                        help="Check each Packages.gz against the sha256 in Release")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        os_list_raw = args.os_version.split(',')
        check_args("os_version", os_list_raw)
        component_list = args.component.split(',')
        check_args("component", component_list)
        arch_list = args.arch.split(',')
        check_args("arch", arch_list)
        mirrors = args.mirrors or MIRROR_LIST
        check_args("mirror", mirrors)
        if args.lane_capacity < 1:
            raise ValueError(f"Invalid lane capacity: {args.lane_capacity}")
        os_list = replace_os_template(os_list_raw)
    except ValueError as e:
        parser.error(str(e))
    except KeyError as e:
        parser.error(f"Unknown OS template: {e}")

    print(f"Mirroring for OS: {os_list}, Components: {component_list}, Archs: {arch_list}")
    print(f"Index URL: {args.index_url}")
    print(f"Mirrors: {mirrors}")
    print(f"Working Directory: {args.working_dir}", flush=True)

    try:
        args.working_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Error creating working directory {args.working_dir}: {e}", flush=True)
        sys.exit(1)

    start_time = time.time()
    pool = MirrorPool(mirrors, args.working_dir, lane_capacity=args.lane_capacity)
    orchestrator = Orchestrator(
        args.index_url, os_list, component_arch_pairs(component_list, arch_list), pool,
        flush_tail=args.flush_tail, verify_index=args.verify_index)
    try:
        summary = orchestrator.run()
    except SyncAborted as e:
        print(f"ERROR: {e}", flush=True)
        sys.exit(1)

    print("\n--- Final Summary ---")
    print(f"Total sync time: {time.time() - start_time:.2f} seconds.")
    print(f"Dispatched {summary.records} files ({summary.duplicates} duplicates skipped).")
    print(f"Fetched {summary.fetched}, up to date {summary.skipped}, failed {summary.failed}.")
    print(f"Downloaded {summary.bytes_downloaded / (1024*1024):.2f} MB.", flush=True)


if __name__ == "__main__":
    main()
