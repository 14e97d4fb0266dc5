"""
Pipeline endpoints — one build request fanned out over several targets.

POST /pipelines/               → Create one job per target (groups expanded)
GET  /pipelines/{pipeline_id}  → The pipeline and the current state of its jobs
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from api.dependencies import get_dispatcher
from api.schemas.pipeline import PipelineCreate, PipelineResponse
from dispatcher.dispatcher import Dispatcher
from store.errors import InvalidPayload, InvalidTarget, PipelineNotFound

router = APIRouter(prefix="/pipelines", tags=["pipelines"])


@router.post("/", response_model=PipelineResponse, status_code=201)
async def create_pipeline(
    pipeline_in: PipelineCreate,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> PipelineResponse:
    """Create and publish one QUEUED job per requested target."""
    try:
        pipeline = await run_in_threadpool(
            dispatcher.submit_pipeline,
            pipeline_in.targets,
            pipeline_in.payload.model_dump(),
            pipeline_in.max_attempts,
        )
    except (InvalidTarget, InvalidPayload) as e:
        raise HTTPException(status_code=422, detail=str(e))
    return PipelineResponse.from_pipeline(pipeline)


@router.get("/{pipeline_id}", response_model=PipelineResponse)
async def get_pipeline(
    pipeline_id: UUID,
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> PipelineResponse:
    try:
        pipeline = await run_in_threadpool(dispatcher.get_pipeline, pipeline_id)
    except PipelineNotFound:
        raise HTTPException(status_code=404, detail=f"Pipeline {pipeline_id} not found")
    return PipelineResponse.from_pipeline(pipeline)
