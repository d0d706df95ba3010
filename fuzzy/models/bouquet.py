from dataclasses import dataclass, field
from datetime import datetime

from fuzzy.models._time import isoformat
from fuzzy.models.channel import Channel


@dataclass
class Bouquet:
    """Named grouping of channels for one provider.

    ``channels`` holds independent copies of Channel records, not references.
    """

    name: str = ""
    description: str = ""
    provider_id: int = 0
    channels: list[Channel] = field(default_factory=list)
    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def running_count(self) -> int:
        return sum(1 for ch in self.channels if ch.running)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "provider_id": self.provider_id,
            "channels": [ch.to_dict() for ch in self.channels],
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return (
            f"<Bouquet(id={self.id}, name='{self.name}', "
            f"provider_id={self.provider_id}, channels={len(self.channels)})>"
        )
