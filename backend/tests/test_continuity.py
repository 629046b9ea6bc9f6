import pytest

from reelforge.models import ContinuationMode
from reelforge.services.continuity import (
    ContinuityInput,
    EmbeddingContinuityScorer,
    HeuristicContinuityScorer,
    build_scorer,
)
from reelforge.services.continuity.scorer import clamp_threshold, cosine_similarity, palette_distance

RICH_DIRECTOR = "Mara keeps her left hand on the wound, breathing hard"
RICH_CINEMATOGRAPHER = "Cold blue key from frame left, sodium practicals behind"


@pytest.mark.parametrize("mode", [ContinuationMode.strict, ContinuationMode.balanced, ContinuationMode.loose])
@pytest.mark.parametrize("has_anchor", [True, False])
@pytest.mark.parametrize("rich", [True, False])
@pytest.mark.parametrize("threshold", [0.0, 0.5, 0.75, 0.9, 1.0, 1.4])
def test_regenerate_flag_tracks_threshold(mode, has_anchor, rich, threshold):
    data = ContinuityInput(
        continuation_mode=mode,
        has_anchor=has_anchor,
        director_layer=RICH_DIRECTOR if rich else "",
        cinematographer_layer=RICH_CINEMATOGRAPHER if rich else "",
    )

    result = HeuristicContinuityScorer().score(data, threshold)

    assert 0.0 <= result.score <= 1.0
    assert result.recommend_regenerate == (result.score < clamp_threshold(threshold))
    if result.recommend_regenerate:
        assert "Weakest dimension:" in result.reason


def test_strict_without_anchor_asks_for_one():
    result = HeuristicContinuityScorer().score(
        ContinuityInput(ContinuationMode.strict, has_anchor=False), 0.75
    )

    assert result.score == pytest.approx(0.54)
    assert result.recommend_regenerate is True
    assert result.reason.startswith("Continuation score 0.54 is below threshold 0.75.")
    assert result.reason.endswith("Add an anchor scene frame for stronger continuity.")


def test_anchored_strict_with_rich_layers_passes():
    result = HeuristicContinuityScorer().score(
        ContinuityInput(ContinuationMode.strict, True, RICH_DIRECTOR, RICH_CINEMATOGRAPHER), 0.75
    )

    assert result.score == pytest.approx(0.92)
    assert result.recommend_regenerate is False
    assert result.reason == "Continuation score 0.92 meets threshold 0.75."


def test_score_is_capped_at_one():
    result = HeuristicContinuityScorer().score(
        ContinuityInput(ContinuationMode.loose, True, RICH_DIRECTOR, RICH_CINEMATOGRAPHER), 0.75
    )

    assert result.score == 1.0


def test_missing_cinematographer_layer_is_the_weakest_dimension():
    result = HeuristicContinuityScorer().score(
        ContinuityInput(ContinuationMode.balanced, True, RICH_DIRECTOR, ""), 0.99
    )

    assert result.recommend_regenerate is True
    assert "Weakest dimension: lighting." in result.reason


@pytest.mark.parametrize("scorer", [HeuristicContinuityScorer(), EmbeddingContinuityScorer(lambda p: [1.0], lambda p: [])])
def test_off_mode_never_recommends_regeneration(scorer):
    result = scorer.score(ContinuityInput(ContinuationMode.off, has_anchor=False), 1.0)

    assert result.score == 1.0
    assert result.recommend_regenerate is False
    assert result.reason == "Continuation mode is off. Regeneration is user-directed."


def fake_embedding_scorer(vectors, palettes):
    return EmbeddingContinuityScorer(embed=vectors.__getitem__, palette=palettes.__getitem__)


def frames_input(mode=ContinuationMode.strict):
    return ContinuityInput(
        mode, True, RICH_DIRECTOR, RICH_CINEMATOGRAPHER, anchor_frame_path="anchor.jpg", clip_frame_path="clip.jpg"
    )


def test_matching_frames_score_high():
    scorer = fake_embedding_scorer(
        {"anchor.jpg": [0.2, 0.9, 0.1], "clip.jpg": [0.2, 0.9, 0.1]},
        {"anchor.jpg": [(10, 20, 30)], "clip.jpg": [(10, 20, 30)]},
    )

    result = scorer.score(frames_input(), 0.75)

    assert result.dimensions["subject consistency"] == 1.0
    assert result.dimensions["lighting"] == 1.0
    assert result.recommend_regenerate is False


def test_unrelated_frames_are_flagged():
    scorer = fake_embedding_scorer(
        {"anchor.jpg": [1.0, 0.0], "clip.jpg": [0.0, 1.0]},
        {"anchor.jpg": [(0, 0, 0)], "clip.jpg": [(255, 255, 255)]},
    )

    result = scorer.score(frames_input(), 0.75)

    assert result.recommend_regenerate is True
    assert "Weakest dimension: subject consistency." in result.reason


def test_embedding_scorer_without_frames_uses_heuristic():
    scorer = fake_embedding_scorer({}, {})
    data = ContinuityInput(ContinuationMode.balanced, True, RICH_DIRECTOR, "")

    assert scorer.score(data, 0.75) == HeuristicContinuityScorer().score(data, 0.75)


def test_similarity_helpers():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([0, 0], [1, 0]) == 0.0
    assert palette_distance([(0, 0, 0)], [(255, 255, 255)]) == pytest.approx(1.0)
    assert palette_distance([], [(1, 2, 3)]) == 1.0


def test_build_scorer_rejects_unknown_names():
    assert build_scorer("heuristic").name == "heuristic"
    with pytest.raises(ValueError):
        build_scorer("vibes")
