"""
Tests for the catalog snapshot.

Tests cover:
- Normalization of raw bucket records
- Refresh (missing payload, failure, superseded refreshes)
- Confirm-then-remove deletion
- Filtering and sorting
"""

import asyncio

import pytest

from conftest import SEARCH_PATH, bucket_payload
from recipe_admin.catalog import CatalogStore, filter_entries, normalize_record, parse_timestamp, sort_entries
from recipe_admin.configuration import CatalogSettings
from recipe_admin.errors import DeleteError, RefreshError
from recipe_admin.models import CatalogEntry, SortField, SortOrder


def _entry(entry_id, title="Plat", created_at="2024-01-01T00:00:00Z", ingredients="N/A", file_name=None):
    return CatalogEntry(
        id=entry_id,
        title=title,
        pdf_url=f"http://bucket.test/pdfs/{entry_id}.pdf",
        ingredients_summary=ingredients,
        created_at=created_at,
        file_name=file_name or f"{entry_id}.pdf",
    )


class TestNormalization:
    def test_complete_record(self, bucket_records):
        entry = normalize_record(bucket_records[0], CatalogSettings())
        assert entry.id == "r1"
        assert entry.title == "Tacos au poisson"
        assert entry.ingredients_summary == "poisson, tortilla, citron vert"
        assert entry.file_name == "tacos-au-poisson.pdf"
        assert entry.pdf_url == "http://bucket.test/pdfs/tacos-au-poisson.pdf"
        assert entry.raw_tags.tag2 == "Tacos au poisson"

    def test_sentinel_ingredients_fall_back(self, bucket_records):
        entry = normalize_record(bucket_records[1], CatalogSettings())
        assert entry.ingredients_summary == "N/A"
        assert entry.created_at == "2024-01-15T09:30:00Z"

    def test_missing_tags(self, bucket_records):
        entry = normalize_record(bucket_records[2], CatalogSettings())
        assert entry.title == "untitled"
        assert entry.ingredients_summary == "N/A"
        assert entry.thumbnail_url == "http://bucket.test/thumbs/risotto.png"
        assert entry.created_at  # defaults to now

    def test_record_without_id_is_rejected(self):
        with pytest.raises(KeyError):
            normalize_record({"url": "http://bucket.test/x.pdf"}, CatalogSettings())


class TestRefresh:
    def test_refresh_replaces_snapshot(self, run_dashboard, fake_backend, bucket_records):
        fake_backend.script(
            "GET",
            SEARCH_PATH,
            (200, bucket_payload(*bucket_records)),
            (200, bucket_payload(bucket_records[1])),
        )

        async def scenario(dashboard):
            await dashboard.catalog.refresh()
            first = [e.id for e in dashboard.catalog.entries]
            await dashboard.catalog.refresh()
            return first, [e.id for e in dashboard.catalog.entries]

        first, second = run_dashboard(scenario)
        assert first == ["r1", "r2", "r3"]
        assert second == ["r2"]

    @pytest.mark.parametrize("payload", [{}, {"results": {}}, {"results": None}, [], {"results": {"studentUploadReadingDTOS": "nope"}}])
    def test_missing_array_yields_empty_catalog(self, run_dashboard, fake_backend, payload):
        fake_backend.script("GET", SEARCH_PATH, (200, payload))

        async def scenario(dashboard):
            published = await dashboard.catalog.refresh()
            return published, dashboard.catalog.entries

        published, entries = run_dashboard(scenario)
        assert published is True
        assert entries == ()

    def test_duplicates_and_records_without_id_are_dropped(self, run_dashboard, fake_backend, bucket_records):
        fake_backend.script(
            "GET",
            SEARCH_PATH,
            (200, bucket_payload(bucket_records[0], {"url": "http://bucket.test/orphan.pdf"}, dict(bucket_records[0], tag2="Copie"))),
        )

        async def scenario(dashboard):
            await dashboard.catalog.refresh()
            return dashboard.catalog.entries

        entries = run_dashboard(scenario)
        assert [e.title for e in entries] == ["Tacos au poisson"]

    def test_failed_refresh_keeps_snapshot(self, run_dashboard, fake_backend, bucket_records):
        fake_backend.script(
            "GET",
            SEARCH_PATH,
            (200, bucket_payload(*bucket_records)),
            (500, {"message": "bucket down"}),
        )

        async def scenario(dashboard):
            await dashboard.catalog.refresh()
            before = dashboard.catalog.entries
            with pytest.raises(RefreshError):
                await dashboard.catalog.refresh()
            return before, dashboard.catalog.entries

        before, after = run_dashboard(scenario)
        assert after is before


class _SlowBucketClient:
    """Bucket client whose listings complete only when the test releases them."""

    def __init__(self):
        self.pending = []
        self.deleted = []

    async def search_bucket(self):
        gate = asyncio.get_running_loop().create_future()
        self.pending.append(gate)
        return await gate

    async def delete_artifact(self, entry_id):
        self.deleted.append(entry_id)


class TestConcurrentRefresh:
    def test_superseded_refresh_is_discarded(self, bucket_records):
        async def scenario():
            client = _SlowBucketClient()
            store = CatalogStore(client, CatalogSettings())

            older = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            newer = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)

            client.pending[1].set_result(bucket_payload(bucket_records[1]))
            assert await newer is True
            client.pending[0].set_result(bucket_payload(*bucket_records))
            assert await older is False
            return store.entries

        entries = asyncio.run(scenario())
        assert [e.id for e in entries] == ["r2"]

    def test_superseded_failure_is_ignored(self, bucket_records):
        async def scenario():
            client = _SlowBucketClient()
            store = CatalogStore(client, CatalogSettings())

            older = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            newer = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)

            client.pending[0].set_exception(RefreshError("timeout"))
            assert await older is False
            client.pending[1].set_result(bucket_payload(bucket_records[0]))
            assert await newer is True
            return store.entries

        assert [e.id for e in asyncio.run(scenario())] == ["r1"]

    def test_delete_during_refresh_is_not_resurrected(self, bucket_records):
        async def scenario():
            client = _SlowBucketClient()
            store = CatalogStore(client, CatalogSettings())

            first = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            client.pending[0].set_result(bucket_payload(*bucket_records))
            await first

            second = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            await store.delete("r1")
            # Listing taken before the deletion still contains r1.
            client.pending[1].set_result(bucket_payload(*bucket_records))
            await second
            return store.entries

        assert [e.id for e in asyncio.run(scenario())] == ["r2", "r3"]

    def test_delete_without_refresh_in_flight_is_not_remembered(self, bucket_records):
        """A later listing that still has the entry is taken as it is."""

        async def scenario():
            client = _SlowBucketClient()
            store = CatalogStore(client, CatalogSettings())

            first = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            client.pending[0].set_result(bucket_payload(*bucket_records))
            await first

            await store.delete("r1")
            after_delete = [e.id for e in store.entries]

            second = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            client.pending[1].set_result(bucket_payload(*bucket_records))
            await second
            return after_delete, [e.id for e in store.entries]

        after_delete, after_refresh = asyncio.run(scenario())
        assert after_delete == ["r2", "r3"]
        assert after_refresh == ["r1", "r2", "r3"]

    def test_failed_refresh_forgets_deletions(self, bucket_records):
        async def scenario():
            client = _SlowBucketClient()
            store = CatalogStore(client, CatalogSettings())

            failing = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            await store.delete("r1")
            client.pending[0].set_exception(RefreshError("bucket down"))
            with pytest.raises(RefreshError):
                await failing

            following = asyncio.create_task(store.refresh())
            await asyncio.sleep(0)
            client.pending[1].set_result(bucket_payload(*bucket_records))
            await following
            return store.entries

        assert [e.id for e in asyncio.run(scenario())] == ["r1", "r2", "r3"]


class TestDelete:
    def test_successful_delete_removes_entry(self, run_dashboard, fake_backend, bucket_records):
        fake_backend.script("GET", SEARCH_PATH, (200, bucket_payload(*bucket_records)))
        fake_backend.script("DELETE", "/api/bucket/r2", (204, None))

        async def scenario(dashboard):
            await dashboard.catalog.refresh()
            await dashboard.catalog.delete("r2")
            return dashboard.catalog.entries

        assert [e.id for e in run_dashboard(scenario)] == ["r1", "r3"]

    def test_failed_delete_leaves_snapshot_identical(self, run_dashboard, fake_backend, bucket_records):
        fake_backend.script("GET", SEARCH_PATH, (200, bucket_payload(*bucket_records)))
        fake_backend.script("DELETE", "/api/bucket/r2", (500, {"message": "bucket locked"}))

        async def scenario(dashboard):
            await dashboard.catalog.refresh()
            before = dashboard.catalog.entries
            dump_before = [e.model_dump() for e in before]
            with pytest.raises(DeleteError) as excinfo:
                await dashboard.catalog.delete("r2")
            after = dashboard.catalog.entries
            return before, dump_before, after, excinfo.value

        before, dump_before, after, error = run_dashboard(scenario)
        assert after is before
        assert [e.model_dump() for e in after] == dump_before
        assert error.entry_id == "r2"
        assert str(error) == "bucket locked"


class TestTimestamps:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-05-01T10:00:00Z", "2024-05-01T10:00:00+00:00"),
            ("2024-05-01 10:00:00.1234567Z", "2024-05-01T10:00:00.123456+00:00"),
            ("2024-05-01T10:00:00.5+02:00", "2024-05-01T10:00:00.500000+02:00"),
            ("2024-05-01T10:00:00.12+0200", "2024-05-01T10:00:00.120000+02:00"),
            ("2024-05-01 10:00", "2024-05-01T10:00:00+00:00"),
            ("2024-05-01", "2024-05-01T00:00:00+00:00"),
        ],
    )
    def test_accepted_formats(self, value, expected):
        assert parse_timestamp(value).isoformat() == expected

    @pytest.mark.parametrize("value", ["", "   ", "yesterday", "2024-13-01T00:00:00Z"])
    def test_rejected_values(self, value):
        assert parse_timestamp(value) is None


class TestFilterAndSort:
    def test_filter_is_case_insensitive_substring(self):
        tacos = _entry("a", title="Tacos au poisson")
        salad = _entry("b", title="Salade César", ingredients="laitue, parmesan")
        assert filter_entries([tacos, salad], "tacos") == [tacos]
        assert filter_entries([tacos, salad], "PARMESAN") == [salad]
        assert filter_entries([tacos, salad], "b.pdf") == [salad]
        assert filter_entries([tacos, salad], "sushi") == []

    def test_empty_search_matches_everything(self):
        entries = [_entry("a"), _entry("b")]
        assert filter_entries(entries, "") == entries
        assert filter_entries(entries, "   ") == entries

    def test_sort_by_created_at(self):
        old = _entry("old", created_at="2023-06-01 12:00:00.1234567Z")
        new = _entry("new", created_at="2024-06-01T12:00:00+02:00")
        undated = _entry("undated", created_at="not a date")
        assert sort_entries([old, undated, new]) == [new, old, undated]
        assert sort_entries([old, undated, new], SortField.CREATED_AT, SortOrder.ASC) == [undated, old, new]

    def test_sort_is_stable_for_equal_keys(self):
        first = _entry("first", title="Soupe")
        second = _entry("second", title="soupe")
        third = _entry("third", title="Curry")
        assert sort_entries([first, second, third], SortField.TITLE, SortOrder.ASC) == [third, first, second]
        assert sort_entries([first, second, third], SortField.TITLE, SortOrder.DESC) == [first, second, third]
