"""Channel model: a streamable source with encoding parameters and run state."""

import enum
from dataclasses import dataclass
from datetime import datetime

from fuzzy.models._time import isoformat

ENCODING_DEFAULTS = {
    "video_codec": "x265",
    "audio_codec": "AAC",
    "resolution": "1080p",
    "video_bitrate": "5000k",
    "audio_bitrate": "128k",
    "quality": "High",
}


class ChannelState(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"


@dataclass
class Channel:
    name: str = ""
    manifest: str = ""
    key_kid: str = ""
    video_codec: str = ""
    audio_codec: str = ""
    resolution: str = ""
    video_bitrate: str = ""
    audio_bitrate: str = ""
    quality: str = ""
    running: bool = False
    remux_port: int = 0
    id: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def state(self) -> ChannelState:
        return ChannelState.RUNNING if self.running else ChannelState.STOPPED

    def apply_encoding_defaults(self) -> "Channel":
        """Fill empty encoding fields with the panel defaults."""
        for field_name, default in ENCODING_DEFAULTS.items():
            if not getattr(self, field_name):
                setattr(self, field_name, default)
        return self

    def same_source(self, other: "Channel") -> bool:
        """Content identity used for bouquet copies: (name, manifest)."""
        return self.name == other.name and self.manifest == other.manifest

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "manifest": self.manifest,
            "key_kid": self.key_kid,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "resolution": self.resolution,
            "video_bitrate": self.video_bitrate,
            "audio_bitrate": self.audio_bitrate,
            "quality": self.quality,
            "state": self.state.value,
            "running": self.running,
            "remux_port": self.remux_port,
            "created_at": isoformat(self.created_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, name='{self.name}', state='{self.state.value}')>"
