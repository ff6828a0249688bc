from __future__ import annotations

import pytest

from aptfanout.config import check_args, component_arch_pairs, replace_os_template


def test_plain_codenames_pass_through() -> None:
    assert replace_os_template(["bullseye", "bookworm-updates"]) == ["bullseye", "bookworm-updates"]


def test_bare_template_expands() -> None:
    assert replace_os_template(["@ubuntu-lts"]) == ["focal", "jammy", "noble"]


def test_embedded_template_expands_in_place() -> None:
    assert replace_os_template(["@{debian-current}-security"]) == [
        "bullseye-security",
        "bookworm-security",
    ]


def test_unknown_template_raises() -> None:
    with pytest.raises(KeyError):
        replace_os_template(["@nope"])


@pytest.mark.parametrize("bad", [[""], ["main", "non free"]])
def test_check_args_rejects_bad_items(bad) -> None:
    with pytest.raises(ValueError):
        check_args("component", bad)


def test_pairs_are_component_major() -> None:
    assert component_arch_pairs(["main", "contrib"], ["amd64", "i386"]) == [
        ("main", "amd64"),
        ("main", "i386"),
        ("contrib", "amd64"),
        ("contrib", "i386"),
    ]
