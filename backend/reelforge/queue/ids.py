import re

_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]+")
_DASHES = re.compile(r"-+")


def sanitize_queue_token(value) -> str:
    """Reduce any id to characters that are safe inside a broker job id."""
    token = _UNSAFE.sub("-", "" if value is None else str(value))
    token = _DASHES.sub("-", token).strip("-")
    return token or "queue"


def build_queue_run_id(job_type, job_id) -> str:
    """Deterministic delivery id, so repeated enqueues of one job collapse."""
    type_name = getattr(job_type, "value", job_type)
    return f"{sanitize_queue_token(type_name)}-{sanitize_queue_token(job_id)}"
