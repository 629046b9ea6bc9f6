"""Continuity scoring strategies.

Every scorer honours the same contract: the score is clamped to [0, 1],
``recommend_regenerate`` is true exactly when the score is below the
threshold, and a flagged verdict names the weakest continuity dimension.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from reelforge.models import ContinuationMode

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.75
RICH_LAYER_CHARS = 24

SUBJECT = "subject consistency"
LIGHTING = "lighting"
MOTION = "motion direction"

BASE_SCORES = {
    ContinuationMode.strict: 0.62,
    ContinuationMode.balanced: 0.72,
    ContinuationMode.loose: 0.8,
}


@dataclass
class ContinuityInput:
    continuation_mode: ContinuationMode
    has_anchor: bool
    director_layer: str = ""
    cinematographer_layer: str = ""
    # Local image files, when available
    anchor_frame_path: Optional[str] = None
    clip_frame_path: Optional[str] = None


@dataclass
class ContinuityVerdict:
    score: float
    recommend_regenerate: bool
    reason: str
    dimensions: Dict[str, float] = field(default_factory=dict)


class ContinuityScorer(Protocol):
    name: str
    needs_frames: bool

    def score(self, data: ContinuityInput, threshold: float) -> ContinuityVerdict:
        ...


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def clamp_threshold(threshold: Optional[float]) -> float:
    if threshold is None:
        return DEFAULT_THRESHOLD
    return clamp(float(threshold))


def verdict(score: float, threshold: float, dimensions: Dict[str, float], advice: str) -> ContinuityVerdict:
    score = round(clamp(score), 4)
    threshold = clamp_threshold(threshold)
    recommend = score < threshold
    if recommend:
        weakest = min(dimensions, key=dimensions.get) if dimensions else SUBJECT
        reason = (
            f"Continuation score {score:.2f} is below threshold {threshold:.2f}. "
            f"Weakest dimension: {weakest}. {advice}"
        )
    else:
        reason = f"Continuation score {score:.2f} meets threshold {threshold:.2f}."
    return ContinuityVerdict(score, recommend, reason, dimensions)


def _off_verdict() -> ContinuityVerdict:
    return ContinuityVerdict(
        1.0,
        False,
        "Continuation mode is off. Regeneration is user-directed.",
        {SUBJECT: 1.0, LIGHTING: 1.0, MOTION: 1.0},
    )


class HeuristicContinuityScorer:
    """Scores from the request alone: mode, anchor presence and how specific the layers are."""

    name = "heuristic"
    needs_frames = False

    def _parts(self, data: ContinuityInput) -> Tuple[float, Dict[str, float]]:
        mode = ContinuationMode(data.continuation_mode)
        rich_director = len((data.director_layer or "").strip()) > RICH_LAYER_CHARS
        rich_cinematographer = len((data.cinematographer_layer or "").strip()) > RICH_LAYER_CHARS

        score = BASE_SCORES[mode]
        subject = 0.0
        if data.has_anchor:
            score += 0.18
            subject += 0.18
        elif mode == ContinuationMode.strict:
            score -= 0.08
            subject -= 0.08
        if rich_director:
            score += 0.05
            subject += 0.05

        dimensions = {
            SUBJECT: round(clamp(subject / 0.23), 4),
            LIGHTING: 1.0 if rich_cinematographer else 0.0,
            MOTION: round(BASE_SCORES[mode] / BASE_SCORES[ContinuationMode.loose], 4),
        }
        if rich_cinematographer:
            score += 0.07
        return score, dimensions

    def score(self, data: ContinuityInput, threshold: float) -> ContinuityVerdict:
        if ContinuationMode(data.continuation_mode) == ContinuationMode.off:
            return _off_verdict()
        score, dimensions = self._parts(data)
        advice = (
            "Consider tightening cinematic constraints and resubmitting."
            if data.has_anchor
            else "Add an anchor scene frame for stronger continuity."
        )
        return verdict(score, threshold, dimensions, advice)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def palette_distance(a: Sequence[Tuple[int, int, int]], b: Sequence[Tuple[int, int, int]]) -> float:
    """Mean distance from each colour in ``a`` to its closest colour in ``b``, scaled to [0, 1]."""
    if not a or not b:
        return 1.0
    max_distance = math.sqrt(3 * 255 ** 2)
    total = sum(min(math.dist(color, other) for other in b) for color in a)
    return min(1.0, total / len(a) / max_distance)


class EmbeddingContinuityScorer:
    """Compares the new clip's opening frame with the anchor frame.

    Subject consistency comes from CLIP image embeddings, lighting from the
    dominant colour palettes. Motion direction cannot be read from two stills,
    so it is taken from the heuristic scorer. Without both frames the
    heuristic verdict is returned as is.
    """

    name = "clip"
    needs_frames = True

    # CLIP similarity of unrelated frames rarely drops below this
    SIMILARITY_FLOOR = 0.6
    WEIGHTS = {SUBJECT: 0.5, LIGHTING: 0.3, MOTION: 0.2}

    def __init__(
        self,
        embed: Optional[Callable[[str], List[float]]] = None,
        palette: Optional[Callable[[str], List[Tuple[int, int, int]]]] = None,
        fallback: Optional[HeuristicContinuityScorer] = None,
    ):
        if embed is None or palette is None:
            from reelforge.services.continuity import embedding

            embed = embed or embedding.image_embedding
            palette = palette or embedding.dominant_colors
        self.embed = embed
        self.palette = palette
        self.fallback = fallback or HeuristicContinuityScorer()

    def score(self, data: ContinuityInput, threshold: float) -> ContinuityVerdict:
        if ContinuationMode(data.continuation_mode) == ContinuationMode.off:
            return _off_verdict()
        if not (data.has_anchor and data.anchor_frame_path and data.clip_frame_path):
            return self.fallback.score(data, threshold)

        similarity = cosine_similarity(self.embed(data.anchor_frame_path), self.embed(data.clip_frame_path))
        subject = clamp((similarity - self.SIMILARITY_FLOOR) / (1 - self.SIMILARITY_FLOOR))
        lighting = clamp(1 - palette_distance(self.palette(data.anchor_frame_path), self.palette(data.clip_frame_path)))
        _, heuristic_dimensions = self.fallback._parts(data)
        motion = heuristic_dimensions[MOTION]

        dimensions = {SUBJECT: round(subject, 4), LIGHTING: round(lighting, 4), MOTION: round(motion, 4)}
        score = sum(self.WEIGHTS[name] * value for name, value in dimensions.items())
        logger.debug("[continuity] clip similarity %.3f, dimensions %s", similarity, dimensions)
        return verdict(
            score,
            threshold,
            dimensions,
            "Regenerate from the anchor frame or strengthen the cinematographer layer.",
        )


def build_scorer(name: str) -> ContinuityScorer:
    choice = (name or "heuristic").strip().lower()
    if choice == "clip":
        return EmbeddingContinuityScorer()
    if choice == "heuristic":
        return HeuristicContinuityScorer()
    raise ValueError(f"Unknown CONTINUITY_SCORER '{name}'")
