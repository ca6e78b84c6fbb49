"""
Unit tests for services.profiles.store module.

Tests:
- put/get/has/delete
- set_verified() version tag check
- missing() author filtering
- list() and search()
- follow/block/unfollow and the follow, block and public lists
"""

import pytest

from feedbrotr.core.notifier import ChangeNotifier
from feedbrotr.models.constants import ProfileStatus
from feedbrotr.services.profiles import ProfileTable


ALICE = "a" * 64
BOB = "b" * 64
CAROL = "c" * 64
V1 = "1" * 64
V2 = "2" * 64


@pytest.fixture
def profiles(backend) -> ProfileTable:
    return ProfileTable(backend, notifier=ChangeNotifier("profiles"), clock=lambda: 1000)


class TestBasics:
    async def test_put_and_get(self, profiles, make_profile):
        stored = await profiles.put(make_profile(ALICE, name="alice", event_id=V1))
        assert stored.created == 1000
        assert await profiles.get(ALICE) == stored
        assert await profiles.has(ALICE)

    async def test_latest_put_wins(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, name="alice", event_id=V1))
        await profiles.put(make_profile(ALICE, name="alice2", event_id=V2))
        assert (await profiles.get(ALICE)).name == "alice2"
        assert len(await profiles.list()) == 1

    async def test_delete(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE))
        await profiles.delete(ALICE)
        assert await profiles.get(ALICE) is None

    async def test_wipe(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE))
        await profiles.put(make_profile(BOB))
        assert await profiles.wipe() == 2
        assert await profiles.list() == []


class TestSetVerified:
    async def test_applies_to_matching_version(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, event_id=V1))
        assert await profiles.set_verified(ALICE, V1, True) is True
        assert (await profiles.get(ALICE)).verified is True

    async def test_stale_version_is_discarded(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, event_id=V1))
        await profiles.put(make_profile(ALICE, name="renamed", event_id=V2))
        assert await profiles.set_verified(ALICE, V1, True) is False
        current = await profiles.get(ALICE)
        assert current.verified is None
        assert current.name == "renamed"

    async def test_missing_profile(self, profiles):
        assert await profiles.set_verified(ALICE, V1, True) is False
        assert await profiles.get(ALICE) is None

    async def test_notifies_on_apply(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, event_id=V1))
        version = profiles.notifier.version
        await profiles.set_verified(ALICE, V1, False)
        assert profiles.notifier.version == version + 1


class TestMissing:
    async def test_excludes_cached_authors(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE))
        assert await profiles.missing([ALICE, BOB, CAROL]) == [BOB, CAROL]

    async def test_distinct_in_first_seen_order(self, profiles):
        assert await profiles.missing([CAROL, BOB, CAROL, BOB]) == [CAROL, BOB]

    async def test_empty(self, profiles):
        assert await profiles.missing([]) == []

    async def test_followed_without_metadata_is_missing(self, profiles):
        await profiles.follow(ALICE)
        assert await profiles.missing([ALICE]) == [ALICE]


class TestListAndSearch:
    async def test_list_in_key_order(self, profiles, make_profile):
        await profiles.put(make_profile(BOB, name="bob"))
        await profiles.put(make_profile(ALICE, name="alice"))
        assert [p.name for p in await profiles.list()] == ["alice", "bob"]

    async def test_list_with_predicate(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, name="alice", verified=True))
        await profiles.put(make_profile(BOB, name="bob"))
        verified = await profiles.list(lambda p: p.verified is True)
        assert [p.name for p in verified] == ["alice"]

    async def test_search(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, name="alice", about="bitcoin"))
        await profiles.put(make_profile(BOB, name="bob", nip05="bob@example.com"))
        assert [p.name for p in await profiles.search("bitcoin")] == ["alice"]
        assert [p.name for p in await profiles.search("example")] == ["bob"]
        assert [p.name for p in await profiles.search(BOB[:8])] == ["bob"]

    async def test_empty_search_returns_all(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE))
        await profiles.put(make_profile(BOB))
        assert len(await profiles.search("")) == 2


class TestRelationships:
    async def test_follow_uncached_identity(self, profiles):
        stored = await profiles.follow(ALICE, "friends")
        assert stored.status == ProfileStatus.FOLLOW
        assert stored.circle == "friends"
        assert stored.event_id == ""
        assert stored.created == 1000

    async def test_follow_keeps_metadata(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, name="alice", event_id=V1, verified=True))
        await profiles.follow(ALICE)
        current = await profiles.get(ALICE)
        assert (current.name, current.verified, current.circle) == ("alice", True, None)

    async def test_block_and_unfollow(self, profiles, make_profile):
        await profiles.follow(ALICE, "friends")
        blocked = await profiles.block(ALICE)
        assert blocked.status == ProfileStatus.BLOCK
        assert blocked.circle is None
        assert (await profiles.unfollow(ALICE)).status == ProfileStatus.PUBLIC

    async def test_status_changes_notify(self, profiles):
        version = profiles.notifier.version
        await profiles.follow(ALICE)
        await profiles.block(BOB)
        assert profiles.notifier.version == version + 2

    async def test_invalid_pubkey(self, profiles):
        with pytest.raises(ValueError):
            await profiles.follow("not-hex")

    async def test_lists(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, name="alice"))
        await profiles.put(make_profile(BOB, name="bob"))
        await profiles.put(make_profile(CAROL, name="carol"))
        await profiles.follow(ALICE, "friends")
        await profiles.block(BOB)

        assert [p.pubkey for p in await profiles.follow_list()] == [ALICE]
        assert [p.pubkey for p in await profiles.block_list()] == [BOB]
        assert [p.pubkey for p in await profiles.public_list()] == [CAROL]

    async def test_follow_list_by_circle(self, profiles):
        await profiles.follow(ALICE, "friends")
        await profiles.follow(BOB)
        assert [p.pubkey for p in await profiles.follow_list("friends")] == [ALICE]
        assert len(await profiles.follow_list()) == 2


class TestPutMetadata:
    async def test_keeps_status_and_circle(self, profiles, make_profile):
        await profiles.follow(ALICE, "friends")
        stored = await profiles.put_metadata(make_profile(ALICE, name="alice", event_id=V1))
        assert stored.name == "alice"
        assert (stored.status, stored.circle) == (ProfileStatus.FOLLOW, "friends")
        assert await profiles.missing([ALICE]) == []

    async def test_new_identity_is_public(self, profiles, make_profile):
        stored = await profiles.put_metadata(make_profile(ALICE, event_id=V1))
        assert stored.status == ProfileStatus.PUBLIC

    async def test_replaces_verification(self, profiles, make_profile):
        await profiles.put(make_profile(ALICE, event_id=V1, verified=True))
        await profiles.block(ALICE)
        stored = await profiles.put_metadata(make_profile(ALICE, name="new", event_id=V2))
        assert stored.verified is None
        assert stored.status == ProfileStatus.BLOCK
