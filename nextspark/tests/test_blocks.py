"""Tests for block validation and pattern reference expansion."""

import pytest

from nextspark.core.errors import ValidationError
from nextspark.features.blocks.service import (
    extract_pattern_ids,
    is_pattern_reference,
    resolve_pattern_references,
    validate_blocks,
)

HERO = {"id": "b1", "blockSlug": "hero", "props": {"title": "Hi"}}
REF_A = {"type": "pattern", "ref": "pat-a", "id": "i1"}
REF_B = {"type": "pattern", "ref": "pat-b", "id": "i2"}


def test_validate_normalizes_to_camel_case():
    blocks = validate_blocks([{"id": "b1", "block_slug": "hero"}, REF_A])
    assert blocks[0] == {"id": "b1", "blockSlug": "hero", "props": {}}
    assert blocks[1] == REF_A


def test_validate_collects_every_issue():
    with pytest.raises(ValidationError) as exc:
        validate_blocks(["nope", {"id": "b1"}, HERO, {"type": "pattern", "id": "i9"}])
    assert [issue["index"] for issue in exc.value.details] == [0, 1, 3]


def test_validate_rejects_non_list_and_nested_references():
    with pytest.raises(ValidationError):
        validate_blocks({"id": "b1"})
    with pytest.raises(ValidationError):
        validate_blocks([REF_A], allow_pattern_references=False)
    assert validate_blocks(None) == []


def test_extract_pattern_ids_unique_in_order():
    blocks = [REF_B, HERO, REF_A, dict(REF_B, id="i3")]
    assert extract_pattern_ids(blocks) == ["pat-b", "pat-a"]
    assert extract_pattern_ids(None) == []
    assert not is_pattern_reference(HERO)


def test_extract_pattern_ids_keeps_empty_refs():
    blocks = [{"type": "pattern", "ref": "", "id": "i1"}, REF_A, {"type": "pattern", "id": "i2"}]
    assert extract_pattern_ids(blocks) == ["", "pat-a"]


def test_resolve_expands_and_drops_missing():
    footer = {"id": "f1", "blockSlug": "footer", "props": {}}
    cache = {"pat-a": {"blocks": [footer]}}
    resolved = resolve_pattern_references([HERO, REF_A, REF_B], cache)
    assert resolved == [HERO, footer]
