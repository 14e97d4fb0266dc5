"""Tests for target and target-group expansion."""

import pytest

from dispatcher.targets import expand_targets
from store.errors import InvalidTarget

KNOWN = ["amd64", "arm64", "riscv64"]
GROUPS = {"mainline": ["amd64", "arm64"], "ports": ["riscv64"]}


def test_plain_targets_sorted():
    assert expand_targets(["arm64", "amd64"], KNOWN, GROUPS) == ["amd64", "arm64"]


def test_group_expanded_and_deduplicated():
    assert expand_targets(["mainline", "amd64", "ports"], KNOWN, GROUPS) == ["amd64", "arm64", "riscv64"]


def test_whitespace_ignored():
    assert expand_targets([" amd64 ", ""], KNOWN, GROUPS) == ["amd64"]


def test_unknown_target():
    with pytest.raises(InvalidTarget) as exc_info:
        expand_targets(["amd64", "vax"], KNOWN, GROUPS)
    assert exc_info.value.target == "vax"


def test_empty_request():
    with pytest.raises(InvalidTarget):
        expand_targets(["", " "], KNOWN, GROUPS)
