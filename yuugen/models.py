"""Values exchanged with the UI layer and the ad service."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

# Targeting context produced by the context analyzer. Opaque: any mapping,
# dataclass or pydantic model is passed through untouched.
AIContext = Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AdPlacement:
    id: str
    format: str = "display"
    size: Optional[str] = None


@dataclass(frozen=True)
class AdContent:
    title: str
    description: str
    cta_text: str
    brand_name: str
    image_url: Optional[str] = None
    landing_url: Optional[str] = None


@dataclass(frozen=True)
class Ad:
    id: str
    content: AdContent
    created_at: datetime
    expires_at: datetime
    placement_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Ad":
        """Build an Ad from the ad service's JSON representation."""
        content = data["content"]
        now = _utcnow()
        return cls(
            id=str(data["id"]),
            content=AdContent(
                title=content["title"],
                description=content.get("description", ""),
                cta_text=content.get("ctaText", ""),
                brand_name=content.get("brandName", ""),
                image_url=content.get("imageUrl"),
                landing_url=content.get("landingUrl"),
            ),
            created_at=_parse_time(data.get("createdAt")) or now,
            expires_at=_parse_time(data.get("expiresAt")) or now,
            placement_id=data.get("placementId"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "placementId": self.placement_id,
            "content": {
                "title": self.content.title,
                "description": self.content.description,
                "ctaText": self.content.cta_text,
                "brandName": self.content.brand_name,
                "imageUrl": self.content.image_url,
                "landingUrl": self.content.landing_url,
            },
            "createdAt": self.created_at.isoformat(),
            "expiresAt": self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class AdEvent:
    type: str
    ad_id: Optional[str] = None
    placement_id: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)
    data: Optional[Mapping[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


def _parse_time(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
