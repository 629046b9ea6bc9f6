from fastapi import APIRouter, Depends

from reelforge import schemas
from reelforge.api.dependencies import get_pipeline
from reelforge.queue import QueuePipeline

router = APIRouter(tags=["health"])


@router.get("/health", response_model=schemas.Health)
def health(pipeline: QueuePipeline = Depends(get_pipeline)):
    return schemas.Health(status="ok", queue_backend=pipeline.backend_name)


@router.get("/queue/stats", response_model=schemas.QueueStats)
def queue_stats(pipeline: QueuePipeline = Depends(get_pipeline)):
    return schemas.QueueStats(queue_backend=pipeline.backend_name, counts=pipeline.queue_stats())
