"""In-memory entity store for channels, providers, bouquets and users.

One reader/writer lock guards all four collections. Reads share the lock,
every mutation takes it exclusively. Records go in and come out as deep
copies, so nothing outside the store can change a stored record without
calling one of the update methods.

IDs start at 1 per collection and are never reused after a delete.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Any

from fuzzy.core.lifecycle import ChannelLifecycleMixin
from fuzzy.models import Bouquet, Channel, Provider, User
from fuzzy.models._time import utcnow
from fuzzy.utils.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)


@dataclass
class _Collection:
    kind: str
    records: dict[int, Any] = field(default_factory=dict)
    next_id: int = 1


@dataclass
class StoreCounts:
    channels: int = 0
    running_channels: int = 0
    providers: int = 0
    bouquets: int = 0
    users: int = 0


class Store(ChannelLifecycleMixin):
    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._channels = _Collection("channel")
        self._providers = _Collection("provider")
        self._bouquets = _Collection("bouquet")
        self._users = _Collection("user")

    # ------------------------------------------------------------------
    # Generic collection operations
    # ------------------------------------------------------------------

    def _get_all(self, coll: _Collection) -> list:
        with self._lock.read():
            return [copy.deepcopy(r) for r in coll.records.values()]

    def _get(self, coll: _Collection, record_id: int):
        with self._lock.read():
            record = coll.records.get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def _create(self, coll: _Collection, record):
        record = copy.deepcopy(record)
        with self._lock.write():
            self._insert_locked(coll, record)
        logger.debug("Created %s %d", coll.kind, record.id)
        return copy.deepcopy(record)

    @staticmethod
    def _insert_locked(coll: _Collection, record) -> None:
        # Caller-supplied IDs are ignored.
        now = utcnow()
        record.id = coll.next_id
        coll.next_id += 1
        record.created_at = now
        record.updated_at = now
        coll.records[record.id] = record

    def _update(self, coll: _Collection, record) -> bool:
        record = copy.deepcopy(record)
        with self._lock.write():
            if record.id not in coll.records:
                return False
            record.updated_at = utcnow()
            coll.records[record.id] = record
        logger.debug("Updated %s %d", coll.kind, record.id)
        return True

    def _delete(self, coll: _Collection, record_id: int) -> bool:
        with self._lock.write():
            if coll.records.pop(record_id, None) is None:
                return False
        logger.debug("Deleted %s %d", coll.kind, record_id)
        return True

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    def get_all_channels(self) -> list[Channel]:
        return self._get_all(self._channels)

    def get_channel(self, channel_id: int) -> Channel | None:
        return self._get(self._channels, channel_id)

    def create_channel(self, channel: Channel) -> Channel:
        return self._create(self._channels, channel)

    def update_channel(self, channel: Channel) -> bool:
        """Overwrite a channel and refresh the bouquet copies of its previous identity.

        Run state (``running``, ``remux_port``) is owned by start/stop and is
        kept from the stored record.
        """
        channel = copy.deepcopy(channel)
        with self._lock.write():
            previous = self._channels.records.get(channel.id)
            if previous is None:
                return False
            channel.running = previous.running
            channel.remux_port = previous.remux_port
            channel.created_at = previous.created_at
            channel.updated_at = utcnow()
            self._channels.records[channel.id] = channel
            self._sync_bouquet_copies_locked(channel, match=previous)
        logger.debug("Updated channel %d", channel.id)
        return True

    def delete_channel(self, channel_id: int) -> bool:
        return self._delete(self._channels, channel_id)

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def get_all_providers(self) -> list[Provider]:
        return self._get_all(self._providers)

    def get_provider(self, provider_id: int) -> Provider | None:
        return self._get(self._providers, provider_id)

    def create_provider(self, provider: Provider) -> Provider:
        return self._create(self._providers, provider)

    def update_provider(self, provider: Provider) -> bool:
        return self._update(self._providers, provider)

    def delete_provider(self, provider_id: int) -> bool:
        # Bouquets keep their provider_id; there is no cascade.
        return self._delete(self._providers, provider_id)

    # ------------------------------------------------------------------
    # Bouquets
    # ------------------------------------------------------------------

    def get_all_bouquets(self) -> list[Bouquet]:
        return self._get_all(self._bouquets)

    def get_bouquet(self, bouquet_id: int) -> Bouquet | None:
        return self._get(self._bouquets, bouquet_id)

    def create_bouquet(self, bouquet: Bouquet) -> Bouquet:
        return self._create(self._bouquets, bouquet)

    def update_bouquet(self, bouquet: Bouquet) -> bool:
        return self._update(self._bouquets, bouquet)

    def delete_bouquet(self, bouquet_id: int) -> bool:
        return self._delete(self._bouquets, bouquet_id)

    def get_bouquets_by_provider(self, provider_id: int) -> list[Bouquet]:
        with self._lock.read():
            return self._bouquets_by_provider_locked(provider_id)

    def get_providers_with_bouquets(self) -> list[tuple[Provider, list[Bouquet]]]:
        with self._lock.read():
            return [
                (copy.deepcopy(provider), self._bouquets_by_provider_locked(provider.id))
                for provider in self._providers.records.values()
            ]

    def _bouquets_by_provider_locked(self, provider_id: int) -> list[Bouquet]:
        return [
            copy.deepcopy(b)
            for b in self._bouquets.records.values()
            if b.provider_id == provider_id
        ]

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_all_users(self) -> list[User]:
        return self._get_all(self._users)

    def get_user(self, user_id: int) -> User | None:
        return self._get(self._users, user_id)

    def get_user_by_username(self, username: str) -> User | None:
        with self._lock.read():
            for user in self._users.records.values():
                if user.username == username:
                    return copy.deepcopy(user)
        return None

    def has_users(self) -> bool:
        with self._lock.read():
            return bool(self._users.records)

    def create_user(self, user: User) -> User:
        return self._create(self._users, user)

    def create_initial_user(self, user: User) -> User | None:
        """Create ``user`` only if the collection is empty (first-run setup)."""
        user = copy.deepcopy(user)
        with self._lock.write():
            if self._users.records:
                return None
            self._insert_locked(self._users, user)
        logger.info("Initial user %d created", user.id)
        return copy.deepcopy(user)

    def update_user(self, user: User) -> bool:
        return self._update(self._users, user)

    def delete_user(self, user_id: int) -> bool:
        return self._delete(self._users, user_id)

    # ------------------------------------------------------------------
    # Dashboard + sample data
    # ------------------------------------------------------------------

    def counts(self) -> StoreCounts:
        with self._lock.read():
            return StoreCounts(
                channels=len(self._channels.records),
                running_channels=sum(1 for c in self._channels.records.values() if c.running),
                providers=len(self._providers.records),
                bouquets=len(self._bouquets.records),
                users=len(self._users.records),
            )

    def seed_sample_data(self) -> None:
        """Load demonstration providers, channels and bouquets (no users)."""
        bbc = self.create_provider(
            Provider(
                name="BBC",
                description="British Broadcasting Corporation",
                url="https://manifest.bbc.co.uk",
                active=True,
            )
        )
        sky = self.create_provider(
            Provider(
                name="Sky",
                description="Sky sports and movies",
                url="https://manifest.sky.com",
                active=True,
            )
        )

        samples = [
            ("BBC One", "https://manifest.bbc.co.uk/bbc1/manifest.mpd", "bbc1-key-001"),
            ("BBC Two", "https://manifest.bbc.co.uk/bbc2/manifest.mpd", "bbc2-key-001"),
            ("ITV", "https://manifest.itv.com/itv1/manifest.mpd", "itv1-key-001"),
            ("Channel 4", "https://manifest.channel4.com/c4/manifest.mpd", "c4-key-001"),
            ("Sky Sports", "https://manifest.sky.com/sports/manifest.mpd", "sky-sports-key-001"),
            ("Sky Movies", "https://manifest.sky.com/movies/manifest.mpd", "sky-movies-key-001"),
            ("Discovery", "https://manifest.discovery.com/main/manifest.mpd", "discovery-key-001"),
        ]
        channels = {
            name: self.create_channel(
                Channel(name=name, manifest=manifest, key_kid=kid).apply_encoding_defaults()
            )
            for name, manifest, kid in samples
        }

        self.create_bouquet(
            Bouquet(
                name="Basic Package",
                description="Essential channels for everyday viewing",
                provider_id=bbc.id,
                channels=[channels[n] for n in ("BBC One", "BBC Two", "ITV", "Channel 4")],
            )
        )
        self.create_bouquet(
            Bouquet(
                name="Premium Package",
                description="Complete entertainment experience with sports and movies",
                provider_id=sky.id,
                channels=[
                    channels[n]
                    for n in ("BBC One", "BBC Two", "Sky Sports", "Sky Movies", "Discovery")
                ],
            )
        )
        logger.info("Sample data loaded: %d channels, 2 providers, 2 bouquets", len(channels))
