"""Tests for profile normalization of the several top_styles shapes."""
import pytest

from style_harness.errors import ProfileFetchError
from style_harness.models.schemas import Profile
from style_harness.services.profile import STYLE_CATEGORIES, chart_scores, normalize_profile, normalize_top_styles


def test_flat_mapping():
    assert normalize_top_styles({"casual": 0.8, "formal": 1}) == {"casual": 0.8, "formal": 1.0}


def test_pairs():
    assert normalize_top_styles([["casual", 0.8], ("formal", 0.25)]) == {"casual": 0.8, "formal": 0.25}


def test_nested_score_objects():
    assert normalize_top_styles({"Classic": {"score": 0.5}, "Glam": 2}) == {"Classic": 0.5, "Glam": 2.0}


def test_missing_top_styles_is_empty():
    assert normalize_top_styles(None) == {}


@pytest.mark.parametrize(
    "raw",
    [
        "casual",
        42,
        {"casual": "high"},
        {"casual": True},
        {"casual": {"value": 0.3}},
        [["casual"]],
        [[1, 0.5]],
        [{"name": "casual", "score": 0.3}],
    ],
)
def test_unrecognized_shapes_raise(raw):
    with pytest.raises(ProfileFetchError):
        normalize_top_styles(raw)


def test_full_payload():
    profile = normalize_profile({
        "top_styles": {"casual": 0.8},
        "selection_history": [
            {"image": "women/casual/img1.jpg", "style": "casual", "feedback": "Like",
             "score_change": 0.1, "current_score": 0.8, "timestamp": 1679444374},
            {"style": "formal", "feedback": "Dislike"},
        ],
    })

    assert profile.top_styles == {"casual": 0.8}
    assert [r.style for r in profile.selection_history] == ["casual", "formal"]
    assert profile.selection_history[1].score_change is None


def test_history_defaults_to_empty():
    profile = normalize_profile({"top_styles": {"casual": 0.8}})
    assert profile.selection_history == []


@pytest.mark.parametrize("history", ["none", {"a": 1}, ["entry"], [{"score_change": "lots"}]])
def test_bad_history_raises(history):
    with pytest.raises(ProfileFetchError):
        normalize_profile({"top_styles": {}, "selection_history": history})


def test_chart_scores_fill_missing_categories():
    scores = chart_scores(Profile(top_styles={"Glam": 0.7, "casual": 0.2}))

    assert list(scores)[:len(STYLE_CATEGORIES)] == list(STYLE_CATEGORIES)
    assert scores["Glam"] == 0.7
    assert scores["Classic"] == 0.0
    assert scores["casual"] == 0.2


def test_chart_scores_of_empty_profile():
    assert chart_scores(Profile.empty()) == {name: 0.0 for name in STYLE_CATEGORIES}
