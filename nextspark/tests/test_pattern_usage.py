"""Tests for pattern usage tracking on page saves."""

import logging

import pytest

from nextspark.core.errors import NotFoundError, ValidationError
from nextspark.features.pages import service as pages
from nextspark.features.patterns import service as patterns
from nextspark.features.patterns import usage


def _ref(pattern, instance_id):
    return {"type": "pattern", "ref": pattern.id, "id": instance_id}


@pytest.fixture
def header(team):
    return patterns.create_pattern(
        team.id,
        "owner-1",
        {"title": "Header", "slug": "header", "blocks": [{"id": "h1", "blockSlug": "nav"}]},
    )


@pytest.fixture
def footer(team):
    return patterns.create_pattern(
        team.id,
        "owner-1",
        {"title": "Footer", "slug": "footer", "blocks": [{"id": "f1", "blockSlug": "links"}]},
    )


def _usage_ids(page_id):
    return sorted(u.pattern_id for u in usage.list_entity_usages("pages", page_id))


def test_patterns_cannot_nest_references(team, header):
    with pytest.raises(ValidationError):
        patterns.create_pattern(team.id, "owner-1", {"title": "Bad", "slug": "bad", "blocks": [_ref(header, "x")]})


def test_members_cannot_manage_patterns(team, add_member):
    from nextspark.core.errors import PermissionError

    add_member("member-1", "member")
    with pytest.raises(PermissionError):
        patterns.create_pattern(team.id, "member-1", {"title": "P", "slug": "p"})


def test_page_save_syncs_usages(team, header, footer):
    page = pages.create_page(
        team.id, "owner-1", {"title": "Home", "slug": "home", "blocks": [_ref(header, "i1"), _ref(header, "i2")]}
    )
    assert _usage_ids(page.id) == [header.id]
    assert usage.get_usage_count(header.id) == 1

    pages.update_page(team.id, "owner-1", page.id, {"blocks": [_ref(footer, "i3")]})
    assert _usage_ids(page.id) == [footer.id]
    assert usage.get_usage_count(header.id) == 0


def test_update_without_blocks_keeps_usages(team, header):
    page = pages.create_page(team.id, "owner-1", {"title": "Home", "slug": "home", "blocks": [_ref(header, "i1")]})
    pages.update_page(team.id, "owner-1", page.id, {"title": "Home v2"})
    assert _usage_ids(page.id) == [header.id]


def test_page_delete_removes_usages(team, header):
    page = pages.create_page(team.id, "owner-1", {"title": "Home", "slug": "home", "blocks": [_ref(header, "i1")]})
    pages.delete_page(team.id, "owner-1", page.id)
    assert usage.get_usage_count(header.id) == 0


def test_pattern_delete_removes_usages(team, header):
    page = pages.create_page(team.id, "owner-1", {"title": "Home", "slug": "home", "blocks": [_ref(header, "i1")]})
    patterns.delete_pattern(team.id, "owner-1", header.id)
    assert _usage_ids(page.id) == []
    with pytest.raises(NotFoundError):
        patterns.get_pattern(team.id, "owner-1", header.id)


def test_usages_with_entity_info(team, header):
    pages.create_page(team.id, "owner-1", {"title": "Home", "slug": "home", "blocks": [_ref(header, "i1")]})
    pages.create_page(team.id, "owner-1", {"title": "About", "slug": "about", "blocks": [_ref(header, "i1")]})

    result = usage.get_usages_with_entity_info(header.id, entity_type="pages", limit=1)
    assert result["total"] == 2
    assert len(result["usages"]) == 1
    assert result["usages"][0].entity_title in ("Home", "About")
    assert [(c.entity_type, c.count) for c in result["counts"]] == [("pages", 2)]


def test_resolve_patterns_on_read(team, header):
    hero = {"id": "b1", "blockSlug": "hero", "props": {}}
    page = pages.create_page(
        team.id, "owner-1", {"title": "Home", "slug": "home", "blocks": [hero, _ref(header, "i1")]}
    )
    raw = pages.get_page(team.id, "owner-1", page.id)
    assert raw.blocks[1]["type"] == "pattern"

    resolved = pages.get_page(team.id, "owner-1", page.id, resolve_patterns=True)
    assert [b["blockSlug"] for b in resolved.blocks] == ["hero", "nav"]


def test_usage_sync_failure_does_not_fail_page_save(team, header, monkeypatch, caplog):
    page = pages.create_page(team.id, "owner-1", {"title": "Home", "slug": "home"})

    def broken_session():
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(usage, "get_db_session", broken_session)
    with caplog.at_level(logging.ERROR, logger="nextspark.features.patterns.usage"):
        updated = pages.update_page(team.id, "owner-1", page.id, {"blocks": [_ref(header, "i1")]})

    assert updated.id == page.id
    assert [b["ref"] for b in updated.blocks] == [header.id]
    errors = [r for r in caplog.records if r.name == "nextspark.features.patterns.usage" and r.levelno == logging.ERROR]
    assert errors
    assert errors[0].exc_info is not None

    monkeypatch.undo()
    assert _usage_ids(page.id) == []
