from typing import Dict

from pydantic import BaseModel


class Health(BaseModel):
    status: str
    queue_backend: str


class QueueStats(BaseModel):
    queue_backend: str
    counts: Dict[str, Dict[str, int]]
