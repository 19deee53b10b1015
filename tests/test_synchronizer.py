"""Tests del sincronizador de embeddings."""

import pytest

from propmatch.embeddings import SyncOutcome, build_searchable_text, content_hash
from propmatch.errors import EmbeddingDimensionError
from propmatch.models import Embedding, EntityKind


class TestSync:
    async def test_creates_embedding(self, synchronizer, property_repo, embedding_repo, make_property):
        prop = property_repo.add(make_property("p1"))

        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.CREATED
        assert outcome.ok
        stored = embedding_repo.rows[(EntityKind.PROPERTY, "p1")]
        assert stored.content_hash == content_hash(build_searchable_text(prop))
        assert stored.model == "fake-embedding"
        assert stored.dimension == 2

    async def test_second_sync_is_short_circuited(
        self, synchronizer, property_repo, provider, make_property
    ):
        property_repo.add(make_property("p1"))

        await synchronizer.sync_property("p1")
        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.UNCHANGED
        assert len(provider.calls) == 1

    async def test_view_counter_bumps_never_call_provider(
        self, synchronizer, property_repo, provider, make_property
    ):
        prop = property_repo.add(make_property("p1"))
        await synchronizer.sync_property("p1")

        for views in range(1, 1001):
            property_repo.rows["p1"] = prop.model_copy(update={"views": views})
            await synchronizer.sync_property("p1")

        assert len(provider.calls) == 1

    async def test_content_change_updates(
        self, synchronizer, property_repo, embedding_repo, provider, make_property
    ):
        prop = property_repo.add(make_property("p1"))
        await synchronizer.sync_property("p1")

        property_repo.rows["p1"] = prop.model_copy(update={"price": 3_500_000})
        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.UPDATED
        assert len(provider.calls) == 2

    async def test_force_bypasses_hash(self, synchronizer, demand_repo, provider, make_demand):
        demand_repo.add(make_demand("d1"))
        await synchronizer.sync_demand("d1")

        outcome = await synchronizer.sync_demand("d1", force=True)

        assert outcome == SyncOutcome.UPDATED
        assert len(provider.calls) == 2

    async def test_model_change_forces_resync(
        self, synchronizer, property_repo, embedding_repo, provider, make_property
    ):
        prop = property_repo.add(make_property("p1"))
        embedding_repo.rows[(EntityKind.PROPERTY, "p1")] = Embedding(
            owner_kind=EntityKind.PROPERTY,
            owner_id="p1",
            vector=[0.5, 0.5],
            content_hash=content_hash(build_searchable_text(prop)),
            model="old-model",
        )

        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.UPDATED
        assert embedding_repo.rows[(EntityKind.PROPERTY, "p1")].model == "fake-embedding"

    async def test_missing_entity_is_not_found(self, synchronizer, provider):
        outcome = await synchronizer.sync(EntityKind.DEMAND, "nope")

        assert outcome == SyncOutcome.NOT_FOUND
        assert not outcome.ok
        assert provider.calls == []

    async def test_provider_failure_keeps_old_embedding(
        self, synchronizer, property_repo, embedding_repo, provider, make_property
    ):
        prop = property_repo.add(make_property("p1"))
        await synchronizer.sync_property("p1")
        old = embedding_repo.rows[(EntityKind.PROPERTY, "p1")]

        property_repo.rows["p1"] = prop.model_copy(update={"title": "Renovated"})
        provider.mode = "error"
        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.FAILED
        assert embedding_repo.rows[(EntityKind.PROPERTY, "p1")] is old

    async def test_store_failure_is_reported(
        self, synchronizer, property_repo, embedding_repo, make_property
    ):
        property_repo.add(make_property("p1"))
        embedding_repo.fail_upsert = True

        assert await synchronizer.sync_property("p1") == SyncOutcome.FAILED

    async def test_entity_read_error_is_reported(self, synchronizer, property_repo, provider):
        property_repo.fail_get.add("p1")

        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.FAILED
        assert provider.calls == []

    async def test_embedding_read_error_is_reported(
        self, synchronizer, property_repo, embedding_repo, provider, make_property
    ):
        property_repo.add(make_property("p1"))
        embedding_repo.fail_get = True

        assert await synchronizer.sync_property("p1") == SyncOutcome.FAILED
        assert provider.calls == []

    async def test_hash_covers_exactly_the_embedded_text(
        self, synchronizer, property_repo, embedding_repo, provider, make_property
    ):
        property_repo.add(make_property("p1", description="Quiet unit. " * 120))

        await synchronizer.sync_property("p1")

        sent = provider.calls[0]
        assert len(sent) <= provider.max_chars
        assert embedding_repo.rows[(EntityKind.PROPERTY, "p1")].content_hash == content_hash(sent)
        assert "Watthana" in sent
        assert "ล้านบาท" in sent

    async def test_edits_past_the_embedded_text_do_not_resync(
        self, synchronizer, property_repo, provider, make_property
    ):
        long_description = "Quiet unit near the park. " * 40
        prop = property_repo.add(make_property("p1", description=long_description))
        await synchronizer.sync_property("p1")

        property_repo.rows["p1"] = prop.model_copy(
            update={"description": long_description + "Freshly painted."}
        )
        outcome = await synchronizer.sync_property("p1")

        assert outcome == SyncOutcome.UNCHANGED
        assert len(provider.calls) == 1

    async def test_is_current_accepts_precomputed_hash(
        self, synchronizer, store_embedding, make_property
    ):
        prop = make_property("p1")
        stored = store_embedding(prop, [1.0, 0.0])

        assert synchronizer.is_current(stored, prop, stored.content_hash)
        assert not synchronizer.is_current(stored, prop, "otro-hash")

    async def test_wrong_dimension_propagates(self, synchronizer, property_repo, provider, make_property):
        property_repo.add(make_property("p1"))
        provider.default_vector = [1.0, 0.0, 0.0]

        with pytest.raises(EmbeddingDimensionError):
            await synchronizer.sync_property("p1")


class TestCurrentEmbedding:
    async def test_current(self, synchronizer, store_embedding, make_property):
        prop = make_property("p1")
        stored = store_embedding(prop, [1.0, 0.0])

        assert await synchronizer.current_embedding(prop) == stored

    async def test_stale_after_content_change(self, synchronizer, store_embedding, make_property):
        prop = make_property("p1")
        store_embedding(prop, [1.0, 0.0])

        changed = prop.model_copy(update={"description": "Pet friendly"})
        assert await synchronizer.current_embedding(changed) is None

    async def test_wrong_dimension_is_not_current(
        self, synchronizer, embedding_repo, make_property
    ):
        prop = make_property("p1")
        embedding_repo.rows[(EntityKind.PROPERTY, "p1")] = Embedding(
            owner_kind=EntityKind.PROPERTY,
            owner_id="p1",
            vector=[1.0, 0.0, 0.0],
            content_hash=content_hash(build_searchable_text(prop)),
            model="fake-embedding",
        )

        assert await synchronizer.current_embedding(prop) is None


class TestDelete:
    async def test_delete_is_idempotent(self, synchronizer, store_embedding, embedding_repo, make_property):
        prop = make_property("p1")
        store_embedding(prop, [1.0, 0.0])

        await synchronizer.delete_embedding(EntityKind.PROPERTY, "p1")
        await synchronizer.delete_embedding(EntityKind.PROPERTY, "p1")

        assert embedding_repo.rows == {}
