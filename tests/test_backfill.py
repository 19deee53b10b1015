"""Tests del job de backfill de embeddings."""

import pytest

from propmatch.embeddings import SyncOutcome
from propmatch.errors import BackfillAlreadyRunningError, CacheError, EmbeddingDimensionError
from propmatch.models import EntityKind
from propmatch.scripts.run_backfill import BackfillJob, BackfillStats


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def job(settings, synchronizer, property_repo, demand_repo, embedding_repo, fake_redis, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return BackfillJob(
        settings.model_copy(update={"backfill_delay_seconds": 0.1}),
        synchronizer,
        property_repo,
        demand_repo,
        embedding_repo,
        fake_redis,
        sleep=fake_sleep,
    )


class TestBackfillStats:
    def test_record(self):
        stats = BackfillStats()
        for outcome in (
            SyncOutcome.CREATED,
            SyncOutcome.UPDATED,
            SyncOutcome.FAILED,
            SyncOutcome.UNCHANGED,
            SyncOutcome.NOT_FOUND,
        ):
            stats.record(outcome)

        assert stats.to_dict() == {"success": 2, "failed": 1, "skipped": 2}
        assert stats.total == 5


class TestBackfillJob:
    async def test_embeds_only_missing_records(
        self, job, property_repo, demand_repo, store_embedding, provider, make_property, make_demand
    ):
        property_repo.add(make_property("p1"))
        store_embedding(property_repo.add(make_property("p2")), [1.0, 0.0])
        property_repo.add(make_property("p3", status="draft"))
        demand_repo.add(make_demand("d1"))

        stats = await job.run()

        assert stats.success == 2
        assert stats.failed == 0
        assert len(provider.calls) == 2

    async def test_paces_between_provider_calls(self, job, property_repo, make_property, sleeps):
        for i in range(3):
            property_repo.add(make_property(f"p{i}"))

        await job.run(kinds=[EntityKind.PROPERTY])

        assert sleeps == [0.1, 0.1, 0.1]

    async def test_counts_failures(self, job, property_repo, provider, make_property):
        property_repo.add(make_property("p1"))
        property_repo.add(make_property("p2"))
        provider.mode = "error"

        stats = await job.run(kinds=[EntityKind.PROPERTY])

        assert stats.failed == 2
        assert stats.success == 0

    async def test_read_error_counts_as_one_failure(
        self, job, property_repo, embedding_repo, make_property
    ):
        property_repo.add(make_property("p1"))
        property_repo.add(make_property("p2"))
        property_repo.fail_get.add("p1")

        stats = await job.run(kinds=[EntityKind.PROPERTY])

        assert stats.failed == 1
        assert stats.success == 1
        assert (EntityKind.PROPERTY, "p2") in embedding_repo.rows

    async def test_limit_per_kind(self, job, property_repo, make_property):
        for i in range(5):
            property_repo.add(make_property(f"p{i}"))

        stats = await job.run(kinds=["property"], limit=2)

        assert stats.total == 2

    async def test_include_existing_skips_current(
        self, job, property_repo, store_embedding, provider, make_property, sleeps
    ):
        store_embedding(property_repo.add(make_property("p1")), [1.0, 0.0])

        stats = await job.run(kinds=[EntityKind.PROPERTY], include_existing=True)

        assert stats.skipped == 1
        assert provider.calls == []
        assert sleeps == []

    async def test_single_instance(self, job, fake_redis):
        fake_redis.locks.add(job.lock_name)

        with pytest.raises(BackfillAlreadyRunningError):
            await job.run()

    async def test_lock_released_after_run(self, job, fake_redis):
        await job.run()
        assert fake_redis.locks == set()

    async def test_lock_released_on_error(self, job, property_repo, provider, fake_redis, make_property):
        property_repo.add(make_property("p1"))
        provider.default_vector = [1.0, 0.0, 0.0]

        with pytest.raises(EmbeddingDimensionError):
            await job.run()
        assert fake_redis.locks == set()

    async def test_refuses_to_start_without_redis(self, job, fake_redis, provider):
        fake_redis.down = True

        with pytest.raises(CacheError):
            await job.run()
        assert provider.calls == []
