"""Tests for build payload validation."""

import pytest

from dispatcher.payload import validate_build_payload
from store.errors import InvalidPayload


def test_minimal_payload_gets_defaults():
    payload = validate_build_payload({"packages": ["bash"], "git_ref": "stable"})

    assert payload == {
        "packages": ["bash"],
        "git_ref": "stable",
        "github_pr": None,
        "chat_id": None,
        "build_flags": {},
    }


def test_package_names_trimmed():
    payload = validate_build_payload({"packages": [" bash", "fish "], "git_ref": "stable"})
    assert payload["packages"] == ["bash", "fish"]


@pytest.mark.parametrize("payload", [
    {"git_ref": "stable"},
    {"packages": [], "git_ref": "stable"},
    {"packages": ["bash fish"], "git_ref": "stable"},
    {"packages": ["  "], "git_ref": "stable"},
    {"packages": ["bash"], "git_ref": ""},
    {"packages": ["bash"], "git_ref": "stable", "github_pr": 0},
])
def test_invalid_payloads(payload):
    with pytest.raises(InvalidPayload):
        validate_build_payload(payload)
