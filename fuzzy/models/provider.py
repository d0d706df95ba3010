from dataclasses import dataclass
from datetime import datetime

from fuzzy.models._time import isoformat


@dataclass
class Provider:
    """Upstream content source. Bouquets point at it by provider_id."""

    name: str = ""
    description: str = ""
    url: str = ""
    api_key: str = ""
    active: bool = False
    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "active": self.active,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Provider(id={self.id}, name='{self.name}', active={self.active})>"
