"""
Profile normalization.

Older server revisions returned top_styles in several shapes. They are all
flattened here into {style_name: score}:

    {"casual": 0.8}                    documented shape
    [["casual", 0.8], ...]             list of pairs
    {"casual": {"score": 0.8}}         nested objects

Anything else raises ProfileFetchError rather than being guessed at.
"""
from __future__ import annotations

from typing import Any, Dict, List

from pydantic import ValidationError

from style_harness.errors import ProfileFetchError
from style_harness.models.schemas import Profile, SelectionRecord


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _score(name: Any, value: Any) -> float:
    if _is_number(value):
        return float(value)
    if isinstance(value, dict) and _is_number(value.get("score")):
        return float(value["score"])
    raise ProfileFetchError(f"unrecognized score for style {name!r}: {value!r}")


def normalize_top_styles(raw: Any) -> Dict[str, float]:
    if raw is None:
        return {}

    if isinstance(raw, dict):
        return {str(name): _score(name, value) for name, value in raw.items()}

    if isinstance(raw, list):
        styles: Dict[str, float] = {}
        for pair in raw:
            if not isinstance(pair, (list, tuple)) or len(pair) != 2 or not isinstance(pair[0], str):
                raise ProfileFetchError(f"unrecognized top_styles entry: {pair!r}")
            styles[pair[0]] = _score(pair[0], pair[1])
        return styles

    raise ProfileFetchError(f"unrecognized top_styles shape: {type(raw).__name__}")


def normalize_history(raw: Any) -> List[SelectionRecord]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ProfileFetchError(f"unrecognized selection_history shape: {type(raw).__name__}")

    records = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ProfileFetchError(f"unrecognized selection_history entry: {entry!r}")
        try:
            records.append(SelectionRecord(**entry))
        except ValidationError as e:
            raise ProfileFetchError(f"invalid selection_history entry: {e.error_count()} error(s)") from e
    return records


def normalize_profile(payload: Dict[str, Any]) -> Profile:
    """Build a Profile from a raw GET /profile body, or raise ProfileFetchError."""
    return Profile(
        top_styles=normalize_top_styles(payload.get("top_styles")),
        selection_history=normalize_history(payload.get("selection_history")),
    )


# Fixed categories of the preference chart, in display order.
STYLE_CATEGORIES = (
    "Classic",
    "Creative",
    "Fashionista",
    "Sophisticated",
    "Romantic",
    "Natural",
    "Modern",
    "Glam",
    "Streetstyle",
)


def chart_scores(profile: Profile) -> Dict[str, float]:
    """Every chart category (0 when the server sent none), then any other styles."""
    scores = {name: profile.top_styles.get(name, 0.0) for name in STYLE_CATEGORIES}
    for name, score in profile.top_styles.items():
        scores.setdefault(name, score)
    return scores
