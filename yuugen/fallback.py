"""Placeholder ads used when the real ad source is unavailable."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Optional

from yuugen.models import Ad, AdContent, AdPlacement

FALLBACK_ID_PREFIX = "fallback_"
FALLBACK_TITLE = "Advertisement"
FALLBACK_TTL = timedelta(hours=24)

_sequence = itertools.count(1)


def synthesize_fallback(placement: AdPlacement, now: Optional[datetime] = None) -> Ad:
    """Return a generic placeholder ad for ``placement``. Never raises."""
    now = now or datetime.now(timezone.utc)
    suffix = f"{int(now.timestamp() * 1000)}_{next(_sequence)}"
    return Ad(
        id=f"{FALLBACK_ID_PREFIX}{placement.id}_{suffix}",
        content=AdContent(
            title=FALLBACK_TITLE,
            description="Sponsored content",
            cta_text="Learn More",
            brand_name="Advertiser",
            image_url="https://via.placeholder.com/300x250?text=Ad",
            landing_url="https://example.com",
        ),
        created_at=now,
        expires_at=now + FALLBACK_TTL,
        placement_id=placement.id,
    )


def is_fallback(ad: Ad) -> bool:
    return ad.id.startswith(FALLBACK_ID_PREFIX) and ad.content.title == FALLBACK_TITLE
