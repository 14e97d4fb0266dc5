"""Pydantic schemas for the /pipelines endpoints."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from api.schemas.job import JobResponse
from dispatcher.payload import BuildPayload


class PipelineCreate(BaseModel):
    """Request body for POST /pipelines/ — one build fanned out over several targets."""

    targets: list[str] = Field(
        ...,
        min_length=1,
        description="Target names or group names such as 'mainline'",
        examples=[["mainline"], ["amd64", "arm64"]],
    )
    payload: BuildPayload
    max_attempts: Optional[int] = Field(default=None, ge=1, le=10)


class PipelineResponse(BaseModel):
    id: UUID
    targets: list[str]
    payload: dict
    created_at: datetime
    jobs: list[JobResponse]

    @classmethod
    def from_pipeline(cls, pipeline) -> "PipelineResponse":
        return cls(
            id=pipeline.id,
            targets=pipeline.target_list,
            payload=pipeline.payload,
            created_at=pipeline.created_at,
            jobs=[JobResponse.model_validate(j) for j in pipeline.jobs],
        )
