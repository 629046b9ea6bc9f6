from .scorer import (
    ContinuityInput,
    ContinuityScorer,
    ContinuityVerdict,
    EmbeddingContinuityScorer,
    HeuristicContinuityScorer,
    build_scorer,
)

__all__ = [
    "ContinuityInput",
    "ContinuityScorer",
    "ContinuityVerdict",
    "EmbeddingContinuityScorer",
    "HeuristicContinuityScorer",
    "build_scorer",
]
