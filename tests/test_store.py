"""Tests for the in-memory entity store."""

import threading

import pytest

from fuzzy.core.store import Store
from fuzzy.models import Bouquet, Channel, Provider, User


def _channel(name="BBC One", manifest="https://cdn.example/bbc1.mpd", **kwargs):
    return Channel(name=name, manifest=manifest, key_kid="kid:key", **kwargs)


# ---------------------------------------------------------------------------
# ID assignment and timestamps
# ---------------------------------------------------------------------------


class TestCreate:
    def test_ids_start_at_one_per_collection(self, store):
        assert store.create_channel(_channel()).id == 1
        assert store.create_channel(_channel("Two")).id == 2
        assert store.create_provider(Provider(name="BBC")).id == 1
        assert store.create_bouquet(Bouquet(name="Basic")).id == 1
        assert store.create_user(User(username="a")).id == 1

    def test_caller_supplied_id_is_ignored(self, store):
        created = store.create_channel(_channel(id=42))
        assert created.id == 1
        assert store.get_channel(42) is None

    def test_ids_never_reused_after_delete(self, store):
        first = store.create_provider(Provider(name="A"))
        assert store.delete_provider(first.id)
        second = store.create_provider(Provider(name="B"))
        assert second.id == 2

    @pytest.mark.parametrize(
        "create,delete,make",
        [
            ("create_channel", "delete_channel", lambda n: _channel(f"c{n}")),
            ("create_provider", "delete_provider", lambda n: Provider(name=f"p{n}")),
            ("create_bouquet", "delete_bouquet", lambda n: Bouquet(name=f"b{n}")),
            ("create_user", "delete_user", lambda n: User(username=f"u{n}")),
        ],
    )
    def test_ids_strictly_increase_across_deletes(self, store, create, delete, make):
        create_fn, delete_fn = getattr(store, create), getattr(store, delete)
        ids = []
        for n in range(6):
            record = create_fn(make(n))
            ids.append(record.id)
            if n % 2 == 0:
                assert delete_fn(record.id)
        # Deleting the newest record does not free its ID either
        assert delete_fn(ids[-1])
        ids.append(create_fn(make(6)).id)
        assert ids == [1, 2, 3, 4, 5, 6, 7]

    def test_timestamps_set_on_create(self, store):
        created = store.create_provider(Provider(name="A"))
        assert created.created_at is not None
        assert created.created_at == created.updated_at

    def test_update_refreshes_updated_at_only(self, store):
        created = store.create_provider(Provider(name="A"))
        created.name = "B"
        assert store.update_provider(created)
        fetched = store.get_provider(created.id)
        assert fetched.name == "B"
        assert fetched.created_at == created.created_at
        assert fetched.updated_at >= created.updated_at


# ---------------------------------------------------------------------------
# Reads, updates, deletes
# ---------------------------------------------------------------------------


class TestReadUpdateDelete:
    def test_get_missing_returns_none(self, store):
        assert store.get_channel(1) is None
        assert store.get_provider(1) is None
        assert store.get_bouquet(1) is None
        assert store.get_user(1) is None

    def test_returned_records_are_copies(self, store):
        created = store.create_channel(_channel())
        created.name = "mutated"
        fetched = store.get_channel(created.id)
        assert fetched.name == "BBC One"

        fetched.name = "mutated again"
        assert store.get_channel(created.id).name == "BBC One"

    def test_bouquet_channel_list_is_copied(self, store):
        bouquet = store.create_bouquet(Bouquet(name="Basic", channels=[_channel()]))
        fetched = store.get_bouquet(bouquet.id)
        fetched.channels.append(_channel("Extra"))
        assert len(store.get_bouquet(bouquet.id).channels) == 1

    def test_update_missing_returns_false(self, store):
        assert store.update_channel(_channel(id=7)) is False
        assert store.update_provider(Provider(id=7)) is False
        assert store.update_bouquet(Bouquet(id=7)) is False
        assert store.update_user(User(id=7)) is False

    def test_delete_missing_returns_false(self, store):
        assert store.delete_channel(1) is False
        assert store.delete_user(1) is False

    def test_delete_twice(self, store):
        channel = store.create_channel(_channel())
        assert store.delete_channel(channel.id) is True
        assert store.delete_channel(channel.id) is False

        user = store.create_user(User(username="a"))
        assert store.delete_user(user.id) is True
        assert store.delete_user(user.id) is False

    def test_update_missing_leaves_collection_unchanged(self, seeded_store):
        before = seeded_store.get_all_channels()
        assert seeded_store.update_channel(_channel("Ghost", id=99)) is False
        assert seeded_store.get_all_channels() == before

        providers_before = seeded_store.get_all_providers()
        assert seeded_store.update_provider(Provider(name="Ghost", id=99)) is False
        assert seeded_store.get_all_providers() == providers_before

        bouquets_before = seeded_store.get_all_bouquets()
        assert seeded_store.update_bouquet(Bouquet(name="Ghost", id=99)) is False
        assert seeded_store.get_all_bouquets() == bouquets_before

    def test_get_all(self, store):
        store.create_channel(_channel("A"))
        store.create_channel(_channel("B"))
        names = sorted(c.name for c in store.get_all_channels())
        assert names == ["A", "B"]

    def test_deleting_provider_keeps_its_bouquets(self, store):
        provider = store.create_provider(Provider(name="BBC"))
        bouquet = store.create_bouquet(Bouquet(name="Basic", provider_id=provider.id))
        assert store.delete_provider(provider.id)
        orphan = store.get_bouquet(bouquet.id)
        assert orphan is not None
        assert orphan.provider_id == provider.id

    def test_deleting_channel_keeps_bouquet_copies(self, store):
        channel = store.create_channel(_channel())
        bouquet = store.create_bouquet(Bouquet(name="Basic", channels=[channel]))
        assert store.delete_channel(channel.id)
        assert len(store.get_bouquet(bouquet.id).channels) == 1


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestQueries:
    def test_bouquets_by_provider(self, store):
        bbc = store.create_provider(Provider(name="BBC"))
        sky = store.create_provider(Provider(name="Sky"))
        store.create_bouquet(Bouquet(name="Basic", provider_id=bbc.id))
        store.create_bouquet(Bouquet(name="Premium", provider_id=sky.id))
        store.create_bouquet(Bouquet(name="Extra", provider_id=bbc.id))

        names = sorted(b.name for b in store.get_bouquets_by_provider(bbc.id))
        assert names == ["Basic", "Extra"]
        assert store.get_bouquets_by_provider(99) == []

    def test_providers_with_bouquets(self, seeded_store):
        grouped = {p.name: [b.name for b in bs] for p, bs in seeded_store.get_providers_with_bouquets()}
        assert grouped == {"BBC": ["Basic Package"], "Sky": ["Premium Package"]}

    def test_user_by_username_is_case_sensitive(self, store):
        store.create_user(User(username="Alice"))
        assert store.get_user_by_username("Alice") is not None
        assert store.get_user_by_username("alice") is None

    def test_has_users(self, store):
        assert store.has_users() is False
        store.create_user(User(username="a"))
        assert store.has_users() is True

    def test_create_initial_user_only_when_empty(self, store):
        assert store.create_initial_user(User(username="first")).id == 1
        assert store.create_initial_user(User(username="second")) is None
        assert [u.username for u in store.get_all_users()] == ["first"]

    def test_create_initial_user_concurrent(self, store):
        results = []
        barrier = threading.Barrier(8)

        def worker(n):
            barrier.wait()
            results.append(store.create_initial_user(User(username=f"user{n}")))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sum(1 for r in results if r is not None) == 1
        assert len(store.get_all_users()) == 1

    def test_counts(self, seeded_store):
        seeded_store.start_channel(1)
        counts = seeded_store.counts()
        assert counts.channels == 7
        assert counts.running_channels == 1
        assert counts.providers == 2
        assert counts.bouquets == 2
        assert counts.users == 0


class TestSampleData:
    def test_seed_creates_no_users(self):
        store = Store()
        store.seed_sample_data()
        assert store.has_users() is False

    def test_seeded_channels_have_encoding_defaults(self, seeded_store):
        channel = seeded_store.get_channel(1)
        assert channel.video_codec == "x265"
        assert channel.quality == "High"
        assert channel.running is False

    def test_premium_shares_bbc_channels(self, seeded_store):
        premium = next(b for b in seeded_store.get_all_bouquets() if b.name == "Premium Package")
        assert [c.name for c in premium.channels][:2] == ["BBC One", "BBC Two"]
