"""Tests for fallback ad synthesis."""

from datetime import datetime, timedelta, timezone

from yuugen.fallback import FALLBACK_ID_PREFIX, FALLBACK_TITLE, is_fallback, synthesize_fallback
from yuugen.models import AdPlacement

from conftest import make_ad


def test_fallback_shape():
    now = datetime(2026, 1, 1, tzinfo=timezone.utc)
    ad = synthesize_fallback(AdPlacement(id="sidebar"), now=now)

    assert ad.id.startswith(f"{FALLBACK_ID_PREFIX}sidebar_")
    assert ad.content.title == FALLBACK_TITLE == "Advertisement"
    assert ad.content.cta_text == "Learn More"
    assert ad.placement_id == "sidebar"
    assert ad.created_at == now
    assert ad.expires_at == now + timedelta(hours=24)


def test_fallback_ids_are_unique():
    placement = AdPlacement(id="inline")
    now = datetime.now(timezone.utc)
    ids = {synthesize_fallback(placement, now=now).id for _ in range(50)}
    assert len(ids) == 50


def test_is_fallback():
    assert is_fallback(synthesize_fallback(AdPlacement(id="p")))
    assert not is_fallback(make_ad())
