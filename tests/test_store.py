"""Tests for the versioned research store."""

import asyncio

import pytest

from person_research.exceptions import ResearchRecordNotFoundError
from person_research.store import SqlResearchStore
from tests.conftest import ORG_ID, USER_ID, make_result


async def _live_versions(store: SqlResearchStore, subject_id: int) -> list[int]:
    return [r.version for r in await store.list_versions(subject_id, ORG_ID) if r.is_live]


class TestSave:
    @pytest.mark.asyncio
    async def test__first_save__is_version_one_and_live(self, store: SqlResearchStore) -> None:
        record = await store.save(1, ORG_ID, USER_ID, make_result())

        assert record.version == 1
        assert record.is_live is True
        assert record.user_id == USER_ID
        assert record.research_data.answer == "Jane Doe supports education charities."
        assert record.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test__repeated_saves__versions_contiguous_with_one_live(self, store: SqlResearchStore) -> None:
        for _ in range(3):
            await store.save(1, ORG_ID, USER_ID, make_result())

        versions = await store.list_versions(1, ORG_ID)

        assert [r.version for r in versions] == [3, 2, 1]
        assert await _live_versions(store, 1) == [3]

    @pytest.mark.asyncio
    async def test__save_not_live__keeps_previous_live(self, store: SqlResearchStore) -> None:
        await store.save(1, ORG_ID, USER_ID, make_result())

        draft = await store.save(1, ORG_ID, USER_ID, make_result(), set_as_live=False)

        assert draft.version == 2
        assert draft.is_live is False
        assert await _live_versions(store, 1) == [1]

    @pytest.mark.asyncio
    async def test__subjects__versioned_independently(self, store: SqlResearchStore) -> None:
        await store.save(1, ORG_ID, USER_ID, make_result())
        await store.save(1, ORG_ID, USER_ID, make_result())

        other = await store.save(2, ORG_ID, USER_ID, make_result())

        assert other.version == 1
        assert await _live_versions(store, 1) == [2]

    @pytest.mark.asyncio
    async def test__concurrent_saves__never_share_a_version(self, store: SqlResearchStore) -> None:
        await asyncio.gather(*(store.save(1, ORG_ID, USER_ID, make_result()) for _ in range(4)))

        versions = await store.list_versions(1, ORG_ID)

        assert sorted(r.version for r in versions) == [1, 2, 3, 4]
        assert len([r for r in versions if r.is_live]) == 1


class TestGet:
    @pytest.mark.asyncio
    async def test__no_version__returns_live_record(self, store: SqlResearchStore) -> None:
        await store.save(1, ORG_ID, USER_ID, make_result(sources=1))
        await store.save(1, ORG_ID, USER_ID, make_result(sources=3))

        record = await store.get(1, ORG_ID)

        assert record is not None
        assert record.version == 2
        assert record.research_data.total_sources == 3

    @pytest.mark.asyncio
    async def test__explicit_version__returned_even_when_not_live(self, store: SqlResearchStore) -> None:
        await store.save(1, ORG_ID, USER_ID, make_result(sources=1))
        await store.save(1, ORG_ID, USER_ID, make_result(sources=3))

        record = await store.get(1, ORG_ID, version=1)

        assert record is not None
        assert record.is_live is False
        assert record.research_data.total_sources == 1

    @pytest.mark.asyncio
    async def test__missing__returns_none(self, store: SqlResearchStore) -> None:
        assert await store.get(1, ORG_ID) is None
        await store.save(1, ORG_ID, USER_ID, make_result())
        assert await store.get(1, ORG_ID, version=7) is None
        assert await store.get(1, "other-org") is None


class TestSetLive:
    @pytest.mark.asyncio
    async def test__older_version__becomes_only_live(self, store: SqlResearchStore) -> None:
        first = await store.save(1, ORG_ID, USER_ID, make_result())
        await store.save(1, ORG_ID, USER_ID, make_result())

        promoted = await store.set_live(first.id, 1)

        assert promoted.is_live is True
        assert promoted.version == 1
        assert await _live_versions(store, 1) == [1]
        live = await store.get(1, ORG_ID)
        assert live is not None and live.id == first.id

    @pytest.mark.asyncio
    async def test__record_of_another_subject__raises_not_found(self, store: SqlResearchStore) -> None:
        record = await store.save(1, ORG_ID, USER_ID, make_result())
        await store.save(2, ORG_ID, USER_ID, make_result())

        with pytest.raises(ResearchRecordNotFoundError):
            await store.set_live(record.id, 2)

        assert await _live_versions(store, 1) == [1]
        assert await _live_versions(store, 2) == [1]

    @pytest.mark.asyncio
    async def test__unknown_record__raises_not_found(self, store: SqlResearchStore) -> None:
        with pytest.raises(ResearchRecordNotFoundError):
            await store.set_live(999, 1)

    @pytest.mark.asyncio
    async def test__concurrent_set_live__leaves_exactly_one_live(self, store: SqlResearchStore) -> None:
        records = [await store.save(1, ORG_ID, USER_ID, make_result()) for _ in range(6)]

        await asyncio.gather(*(store.set_live(r.id, 1) for r in records))

        assert len(await _live_versions(store, 1)) == 1

    @pytest.mark.asyncio
    async def test__set_live_racing_live_saves__one_live_and_contiguous_versions(
        self, store: SqlResearchStore
    ) -> None:
        first = await store.save(1, ORG_ID, USER_ID, make_result())

        await asyncio.gather(
            *(store.save(1, ORG_ID, USER_ID, make_result()) for _ in range(5)),
            *(store.set_live(first.id, 1) for _ in range(5)),
        )

        versions = await store.list_versions(1, ORG_ID)
        assert sorted(r.version for r in versions) == [1, 2, 3, 4, 5, 6]
        assert len(await _live_versions(store, 1)) == 1


@pytest.mark.asyncio
async def test__researched_subject_ids__scoped_to_organization(store: SqlResearchStore) -> None:
    await store.save(1, ORG_ID, USER_ID, make_result())
    await store.save(1, ORG_ID, USER_ID, make_result())
    await store.save(3, ORG_ID, USER_ID, make_result())
    await store.save(4, "other-org", USER_ID, make_result())

    assert await store.researched_subject_ids(ORG_ID) == {1, 3}
    assert await store.researched_subject_ids(ORG_ID, [3, 4, 5]) == {3}
