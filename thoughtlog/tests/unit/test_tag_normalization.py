from __future__ import annotations

import pytest

from thoughtlog.core.errors import AIOutputInvalidError
from thoughtlog.services.analysis.tagging import (
    build_tagger_user_prompt,
    normalize_tags,
    parse_tagging_output,
)


def test_normalize_splits_valid_and_invalid() -> None:
    result = normalize_tags([" work ", "Work", "deep-focus", "two words", "emoji🙂", 7, None, "", "   "])
    assert result.valid == ["work", "Work", "deep-focus"]
    # Blank strings are dropped without being reported.
    assert result.invalid == ["two words", "emoji🙂", "7", "null"]


def test_normalize_dedupes_in_first_seen_order() -> None:
    assert normalize_tags(["b", "a", "b", " a"]).valid == ["b", "a"]


def test_normalize_is_idempotent() -> None:
    first = normalize_tags(["x_1", "y-2", "bad tag", "x_1"])
    second = normalize_tags(first.valid)
    assert second.valid == first.valid
    assert second.invalid == []


@pytest.mark.parametrize("raw", [None, "work", {"tags": ["work"]}, 3])
def test_normalize_non_list_yields_nothing(raw: object) -> None:
    result = normalize_tags(raw)
    assert result.valid == []
    assert result.invalid == []


def test_parse_tagging_output_requires_tag_list() -> None:
    parsed, raw_tags = parse_tagging_output('{"tags": ["a"], "note": "x"}')
    assert raw_tags == ["a"]
    assert parsed["note"] == "x"

    with pytest.raises(AIOutputInvalidError) as exc_info:
        parse_tagging_output('{"tags": "a,b"}')
    assert exc_info.value.reason == "tags_not_list"
    assert exc_info.value.details["code"] == "AI_OUTPUT_INVALID"


@pytest.mark.parametrize(
    ("text", "reason"),
    [("not json at all", "not_json"), ("[1, 2]", "not_object"), ('"tags"', "not_object")],
)
def test_parse_tagging_output_rejects_bad_json(text: str, reason: str) -> None:
    with pytest.raises(AIOutputInvalidError) as exc_info:
        parse_tagging_output(text)
    assert exc_info.value.reason == reason
    assert exc_info.value.details["output_preview"] == text


def test_user_prompt_lists_vocabulary_and_current_tags() -> None:
    prompt = build_tagger_user_prompt(thought="went running", existing_tags=["fitness", "work"], current_tags=["fitness"])
    assert "went running" in prompt
    assert "fitness, work" in prompt
    assert prompt.rstrip().endswith("fitness")
