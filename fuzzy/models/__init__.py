"""Domain models held by the in-memory store."""

from fuzzy.models.bouquet import Bouquet
from fuzzy.models.channel import ENCODING_DEFAULTS, Channel, ChannelState
from fuzzy.models.provider import Provider
from fuzzy.models.user import ADMIN_ROLE, DEFAULT_ROLE, User

__all__ = [
    "ADMIN_ROLE",
    "DEFAULT_ROLE",
    "ENCODING_DEFAULTS",
    "Bouquet",
    "Channel",
    "ChannelState",
    "Provider",
    "User",
]
