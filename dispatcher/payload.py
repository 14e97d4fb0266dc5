"""
Build payload schema.

The dispatch core treats payloads as opaque JSON documents. This schema is
the front-ends' contract, checked once at submission so that a malformed
request fails fast instead of failing on a build machine an hour later.
"""

from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from store.errors import InvalidPayload


class BuildPayload(BaseModel):
    packages: list[str] = Field(..., min_length=1, examples=[["bash", "fish"]])
    git_ref: str = Field(..., min_length=1, examples=["stable"])
    github_pr: Optional[int] = Field(default=None, ge=1)
    chat_id: Optional[int] = None        # chat to report back to, if submitted from chat
    build_flags: dict = Field(default_factory=dict)

    @field_validator("packages")
    @classmethod
    def _no_blank_packages(cls, packages: list[str]) -> list[str]:
        cleaned = [p.strip() for p in packages]
        if any(not p or " " in p for p in cleaned):
            raise ValueError("package names must be non-empty and contain no spaces")
        return cleaned


def validate_build_payload(payload: dict) -> dict:
    """Return the normalized payload, or raise InvalidPayload."""
    try:
        return BuildPayload.model_validate(payload).model_dump()
    except ValidationError as e:
        raise InvalidPayload(str(e)) from e
