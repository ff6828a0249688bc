from typing import Dict

from aptfanout.errors import ErrorKind, MirrorError

SECTION_HEADER = "SHA256"


def is_section_header(line: str) -> bool:
    stripped = line.strip()
    # Release files print the header as "SHA256:"
    return stripped == SECTION_HEADER or stripped == SECTION_HEADER + ":"


def parse_release_file(release_content: str) -> Dict[str, str]:
    """
    Parses the SHA256 block of a Release file.
    Returns a dictionary mapping each listed filename (relative to the
    distribution directory) to its expected sha256 hex digest.
    Raises MirrorError(PARSE_INCONSISTENCY) if a filename is listed twice.
    """
    file_to_sha256 = {}
    in_sha256_rows = False
    for line in release_content.split("\n"):
        if in_sha256_rows and line[:1].isspace():
            columns = line.split()
            if len(columns) != 3:
                continue
            digest, _size, filename = columns
            if filename in file_to_sha256:
                raise MirrorError(
                    ErrorKind.PARSE_INCONSISTENCY,
                    f"duplicate {SECTION_HEADER} entry in Release file",
                    path=filename)
            file_to_sha256[filename] = digest
        else:
            # a non-indented line ends the block and may open the next one
            in_sha256_rows = is_section_header(line)
    return file_to_sha256
