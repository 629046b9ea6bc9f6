"""Builds the text prompt sent to a video provider.

A beat's prompt is assembled from two independently edited layers: the
director layer (performance and intent) and the cinematographer layer
(camera, lighting, movement). When a layer is empty a default is derived from
the storyboard scene. Continuity guidance names the anchor frame the clip
should follow, and the whole prompt is fitted to the model's character limit
by dropping the least important fields first.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from reelforge.models import ContinuationMode
from reelforge.services.video.models import VideoModel

LAYER_SEPARATOR = " | "
SHOT_PREAMBLE = "One coherent cinematic shot from the reference image."
GUARDRAIL = "No text overlays. No watermarks. Preserve subject identity and lighting continuity."

MANUAL = "manual"
DEFAULT = "default"


@dataclass
class ResolvedAnchor:
    anchor_beat_id: Optional[str]
    source_image_url: Optional[str]
    anchor_source: str

    @property
    def has_anchor(self) -> bool:
        return bool(self.anchor_beat_id)


@dataclass
class LayerInputs:
    director_prompt: str = ""
    cinematographer_prompt: str = ""
    film_type: Optional[str] = None
    continuation_mode: ContinuationMode = ContinuationMode.strict


@dataclass
class ComposedPrompt:
    prompt: str
    merged_layers: str
    director_layer: str
    cinematographer_layer: str
    director_source: str
    cinematographer_source: str
    camera_tokens: List[str]
    continuity_guidance: str
    duration_seconds: int
    dropped_fields: List[str] = field(default_factory=list)
    lengths: Dict[str, int] = field(default_factory=dict)


def _clean(value) -> str:
    return re.sub(r"\s+", " ", str(value or "")).strip()


def _truncate(value, limit: int) -> str:
    text = _clean(value)
    return text if len(text) <= limit else f"{text[:limit]}..."


def _scene_beat(scene) -> str:
    return _clean(getattr(scene, "beat_id", ""))


def resolve_anchor(
    continuation_mode: ContinuationMode,
    scenes: Sequence,
    beat_id: str,
    anchor_beat_id: Optional[str] = None,
    completed_frames: Optional[Mapping[str, str]] = None,
) -> ResolvedAnchor:
    """Decide which frame the new clip of ``beat_id`` should continue from.

    ``scenes`` are the storyboard scenes in any order; ``completed_frames``
    maps a beat to the last frame of its latest completed clip.
    """
    mode = ContinuationMode(continuation_mode or ContinuationMode.strict)
    frames = {k: v for k, v in (completed_frames or {}).items() if v}
    ordered = sorted(scenes, key=lambda s: s.scene_number)
    by_beat = {_scene_beat(s): s for s in ordered}

    current = by_beat.get(beat_id)
    current_image = _clean(getattr(current, "image_url", "")) or None

    if mode == ContinuationMode.off:
        return ResolvedAnchor(None, current_image, "continuation-off-current-scene-frame")

    manual = _clean(anchor_beat_id)
    if manual and manual != beat_id and manual in by_beat:
        if frames.get(manual):
            return ResolvedAnchor(manual, frames[manual], "manual-anchor-clip-frame")
        manual_image = _clean(by_beat[manual].image_url)
        if manual_image:
            return ResolvedAnchor(manual, manual_image, "manual-anchor-scene")

    previous = None
    if current is not None:
        index = ordered.index(current)
        if index > 0:
            previous = ordered[index - 1]

    if previous is not None:
        previous_beat = _scene_beat(previous)
        if frames.get(previous_beat):
            return ResolvedAnchor(previous_beat, frames[previous_beat], "previous-clip-last-frame")
        previous_image = _clean(previous.image_url)
        if mode == ContinuationMode.strict and previous_image:
            return ResolvedAnchor(previous_beat, previous_image, "previous-scene-storyboard-frame")

    return ResolvedAnchor(None, current_image, "current-scene-frame")


def continuity_guidance(mode: ContinuationMode, anchor: ResolvedAnchor) -> str:
    mode = ContinuationMode(mode)
    if mode == ContinuationMode.off:
        return ""
    if not anchor.has_anchor:
        return (
            f"Continuity ({mode.value}): opening frame of a sequence. "
            "Establish subject identity and lighting clearly for the scenes that follow."
        )
    frame = f"the anchor frame from beat {anchor.anchor_beat_id} ({anchor.source_image_url})"
    if mode == ContinuationMode.strict:
        return (
            f"Continuity (strict): continue directly from {frame}. "
            "Match subject identity, wardrobe, lighting and screen direction exactly."
        )
    if mode == ContinuationMode.balanced:
        return (
            f"Continuity (balanced): stay consistent with {frame}. "
            "Keep subject identity and lighting; composition may change."
        )
    return f"Continuity (loose): loosely echo the palette and mood of {frame}."


def default_director_layer(scene) -> str:
    parts = [_clean(getattr(scene, "slugline", "")), _clean(getattr(scene, "visual_direction", ""))]
    return ". ".join(p.rstrip(".") for p in parts if p)


def default_cinematographer_layer(scene, film_type: Optional[str] = None) -> str:
    parts = []
    if _clean(getattr(scene, "camera", "")):
        parts.append(_clean(scene.camera).rstrip("."))
    if _clean(film_type):
        parts.append(f"Shot as {_clean(film_type)}")
    return ". ".join(parts)


def camera_move_tokens(scene) -> List[str]:
    moves = getattr(scene, "camera_moves", None) or []
    tokens = []
    for move in moves:
        token = re.sub(r"[^a-z0-9]+", "-", str(move).lower()).strip("-")
        if token and f"[{token}]" not in tokens:
            tokens.append(f"[{token}]")
    return tokens


def merge_layers(director: str, cinematographer: str, tokens: Sequence[str] = (), guidance: str = "") -> str:
    merged = LAYER_SEPARATOR.join(p for p in (_clean(director), _clean(cinematographer)) if p)
    extras = []
    if tokens:
        extras.append("Camera moves: " + " ".join(tokens))
    if guidance:
        extras.append(guidance)
    return " ".join([merged] + extras if merged else extras).strip()


def _fit(fields: List[tuple], max_len: int):
    """Drop the lowest priority fields until the joined prompt fits ``max_len``."""
    kept = sorted(fields, key=lambda f: f[0])
    dropped = []
    text = " ".join(f[2] for f in kept)
    while len(text) > max_len and len(kept) > 1:
        worst = max(f[0] for f in kept)
        for i in range(len(kept) - 1, -1, -1):
            if kept[i][0] == worst:
                dropped.append(kept.pop(i)[1])
                break
        text = " ".join(f[2] for f in kept)
    return text[:max_len], dropped


def compose_prompt(
    scene,
    layers: LayerInputs,
    anchor: ResolvedAnchor,
    model: VideoModel,
    duration_seconds: int,
) -> ComposedPrompt:
    director = _clean(layers.director_prompt)
    director_source = MANUAL if director else DEFAULT
    if not director:
        director = default_director_layer(scene)

    cinematographer = _clean(layers.cinematographer_prompt)
    cinematographer_source = MANUAL if cinematographer else DEFAULT
    if not cinematographer:
        cinematographer = default_cinematographer_layer(scene, layers.film_type)

    tokens = camera_move_tokens(scene)
    guidance = continuity_guidance(layers.continuation_mode, anchor)
    merged = merge_layers(director, cinematographer, tokens, guidance)

    # (priority, name, line): 0 is never cut, higher numbers go first
    fields = [(0, "preamble", SHOT_PREAMBLE)]
    slugline = _truncate(getattr(scene, "slugline", ""), 180)
    if slugline:
        fields.append((0, "scene", f"Scene: {slugline}"))
    action = _truncate(getattr(scene, "visual_direction", ""), 260)
    if action:
        fields.append((0, "action", f"Action: {action}"))
    fields.append((0, "duration", f"Duration: {duration_seconds}s"))
    camera = _truncate(getattr(scene, "camera", ""), 220)
    if camera:
        fields.append((1, "camera", f"Camera: {camera}"))
    look = _truncate(layers.film_type, 160)
    if look:
        fields.append((1, "look", f"Look: {look}"))
    if guidance:
        fields.append((2, "continuity", guidance))
    mood = _truncate(getattr(scene, "mood", ""), 140)
    if mood:
        fields.append((3, "mood", f"Mood: {mood}"))
    if tokens:
        fields.append((4, "camera_moves", "Camera moves: " + " ".join(tokens)))
    if director_source == MANUAL:
        fields.append((5, "director", f"Director: {_truncate(director, 300)}"))
    if cinematographer_source == MANUAL:
        fields.append((5, "cinematographer", f"Cinematography: {_truncate(cinematographer, 300)}"))
    fields.append((6, "guardrail", GUARDRAIL))

    prompt, dropped = _fit(fields, model.char_limit)

    return ComposedPrompt(
        prompt=prompt,
        merged_layers=merged,
        director_layer=director,
        cinematographer_layer=cinematographer,
        director_source=director_source,
        cinematographer_source=cinematographer_source,
        camera_tokens=tokens,
        continuity_guidance=guidance,
        duration_seconds=duration_seconds,
        dropped_fields=dropped,
        lengths={
            "director": len(director),
            "cinematographer": len(cinematographer),
            "camera_moves": len(" ".join(tokens)),
            "continuity_guidance": len(guidance),
            "merged_layers": len(merged),
            "prompt": len(prompt),
        },
    )


def trace_payload(
    composed: ComposedPrompt,
    anchor: ResolvedAnchor,
    layers: LayerInputs,
    model: VideoModel,
    prompt_layer_version: Optional[int] = None,
) -> Dict:
    """Snapshot of every resolved input of one generation attempt."""
    return {
        "prompt": composed.prompt,
        "merged_layers": composed.merged_layers,
        "model": {"key": model.key, "provider": model.provider, "char_limit": model.char_limit},
        "film_type": layers.film_type,
        "continuation_mode": ContinuationMode(layers.continuation_mode).value,
        "prompt_layer_version": prompt_layer_version,
        "layers": {
            "director": {"text": composed.director_layer, "source": composed.director_source},
            "cinematographer": {"text": composed.cinematographer_layer, "source": composed.cinematographer_source},
        },
        "anchor": {
            "beat_id": anchor.anchor_beat_id,
            "source_image_url": anchor.source_image_url,
            "source": anchor.anchor_source,
        },
        "camera_moves": composed.camera_tokens,
        "continuity_guidance": composed.continuity_guidance,
        "duration_seconds": composed.duration_seconds,
        "dropped_fields": composed.dropped_fields,
        "lengths": composed.lengths,
    }
