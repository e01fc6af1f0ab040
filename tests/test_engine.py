"""Tests for the ClipGraph workflow."""

import logging

import pytest

from clipgraph.config import Settings
from clipgraph.engine import ClipGraph
from clipgraph.errors import NotFoundError, UpstreamProviderError, ValidationError
from clipgraph.storage import SQLiteBackend

from helpers import BASE, FakeEmbedder, vec_at

TRANSFORMER = "The Transformer architecture has revolutionized natural language processing"
GNN = "Graph neural networks can learn representations of molecular structures"


class TestClip:
    def test_similar_clips_are_linked(self, graph):
        first = graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)
        second = graph.clip("u1", "paper-2", GNN, embedding=vec_at(0.82))

        assert first.new_edges == []
        assert len(second.new_edges) == 1
        assert second.new_edges[0].weight == pytest.approx(0.82)
        assert second.new_edges[0].other_end(second.item.id) == first.item.id

    def test_per_call_threshold(self, graph):
        graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)
        result = graph.clip("u1", "paper-2", GNN, embedding=vec_at(0.82), threshold=0.9)

        assert result.new_edges == []
        assert len(graph.list_items("u1")) == 2

    def test_clip_without_embedding(self, graph):
        graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)
        result = graph.clip("u1", "paper-2", GNN)

        assert result.new_edges == []
        assert not result.has_embedding
        assert len(graph.list_items("u1")) == 2

    def test_duplicate_returns_existing(self, graph):
        first = graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)
        again = graph.clip("u1", "paper-1", "  the transformer ARCHITECTURE has revolutionized natural language processing ",
                           embedding=BASE)

        assert again.deduplicated
        assert again.item.id == first.item.id
        assert again.new_edges == []
        assert len(graph.graph("u1").nodes) == 1

    def test_same_text_other_document_is_new(self, graph):
        first = graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)
        other = graph.clip("u1", "paper-2", TRANSFORMER, embedding=BASE)

        assert not other.deduplicated
        assert other.item.id != first.item.id
        assert len(other.new_edges) == 1

    @pytest.mark.parametrize("text", ["", "   "])
    def test_blank_text_rejected(self, graph, text):
        with pytest.raises(ValidationError):
            graph.clip("u1", "paper-1", text)
        assert graph.list_items("u1") == []

    def test_invalid_threshold_rejected(self, graph):
        with pytest.raises(ValidationError):
            graph.clip("u1", "paper-1", TRANSFORMER, threshold=1.0)
        assert graph.list_items("u1") == []

    def test_huge_orthogonal_vectors_stay_unlinked(self, graph):
        graph.clip("u1", "paper-1", "a", embedding=[1e200, 1e200])
        result = graph.clip("u1", "paper-1", "b", embedding=[1e200, -1e200])
        assert result.new_edges == []
        assert graph.graph("u1").edges == []

    def test_defaults(self, graph):
        item = graph.clip("u1", "paper-1", TRANSFORMER).item
        assert item.provenance == "clip"
        assert item.title is None


class TestProvider:
    def test_provider_used_when_no_embedding_given(self, store):
        embedder = FakeEmbedder({TRANSFORMER: BASE, GNN: vec_at(0.7)})
        graph = ClipGraph(store, embedder=embedder)

        graph.clip("u1", "paper-1", TRANSFORMER)
        result = graph.clip("u1", "paper-2", GNN)

        assert embedder.calls == [TRANSFORMER, GNN]
        assert result.has_embedding
        assert len(result.new_edges) == 1

    def test_given_embedding_skips_provider(self, store):
        embedder = FakeEmbedder()
        graph = ClipGraph(store, embedder=embedder)
        graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)
        assert embedder.calls == []

    def test_provider_failure_stores_bare_item(self, store, caplog):
        graph = ClipGraph(store, embedder=FakeEmbedder(fail=True))
        graph.clip("u1", "paper-1", TRANSFORMER, embedding=BASE)

        with caplog.at_level(logging.WARNING):
            result = graph.clip("u1", "paper-2", GNN)

        assert not result.has_embedding
        assert result.new_edges == []
        assert len(graph.list_items("u1")) == 2
        assert "Embedding failed" in caplog.text

    def test_duplicate_does_not_call_provider(self, store):
        embedder = FakeEmbedder({TRANSFORMER: BASE})
        graph = ClipGraph(store, embedder=embedder)
        graph.clip("u1", "paper-1", TRANSFORMER)
        graph.clip("u1", "paper-1", TRANSFORMER)
        assert embedder.calls == [TRANSFORMER]


class TestDelete:
    def test_delete_removes_item_and_edges(self, graph):
        a = graph.clip("u1", "paper-1", "a", embedding=BASE).item
        b = graph.clip("u1", "paper-1", "b", embedding=vec_at(0.9)).item
        c = graph.clip("u1", "paper-1", "c", embedding=vec_at(0.8)).item
        assert len(graph.graph("u1").edges) == 3

        assert graph.delete(b.id) is True

        view = graph.graph("u1")
        assert {n.id for n in view.nodes} == {a.id, c.id}
        assert len(view.edges) == 1
        assert all(not e.touches(b.id) for e in view.edges)
        assert graph.stats()["edges"] == 1

    def test_delete_missing(self, graph):
        with pytest.raises(NotFoundError) as exc_info:
            graph.delete("nope")
        assert "nope" in str(exc_info.value)


class TestBackfill:
    def test_backfill_with_given_embedding(self, graph):
        a = graph.clip("u1", "paper-1", "a", embedding=BASE).item
        bare = graph.clip("u1", "paper-1", "b").item

        edges = graph.backfill_embedding(bare.id, embedding=vec_at(0.75))

        assert [e.other_end(bare.id) for e in edges] == [a.id]
        assert graph.get_item(bare.id).has_embedding

    def test_reembed_drops_edges_below_threshold(self, graph):
        graph.clip("u1", "paper-1", "a", embedding=BASE)
        b = graph.clip("u1", "paper-1", "b", embedding=vec_at(0.9)).item
        assert len(graph.graph("u1").edges) == 1

        edges = graph.backfill_embedding(b.id, embedding=vec_at(0.1))

        assert edges == []
        assert graph.graph("u1").edges == []

    def test_reembed_refreshes_surviving_weights(self, graph):
        a = graph.clip("u1", "paper-1", "a", embedding=BASE).item
        b = graph.clip("u1", "paper-1", "b", embedding=vec_at(0.9)).item

        graph.backfill_embedding(b.id, embedding=vec_at(0.6))

        edges = graph.graph("u1").edges
        assert len(edges) == 1
        assert edges[0].other_end(b.id) == a.id
        assert edges[0].weight == pytest.approx(0.6)

    def test_backfill_from_provider(self, store):
        embedder = FakeEmbedder({"b": vec_at(0.75)}, fail=True)
        graph = ClipGraph(store, embedder=embedder)
        graph.clip("u1", "paper-1", "a", embedding=BASE)
        bare = graph.clip("u1", "paper-1", "b").item
        assert not bare.has_embedding

        embedder.fail = False
        edges = graph.backfill_embedding(bare.id)
        assert len(edges) == 1

    def test_backfill_provider_failure_raises(self, store):
        graph = ClipGraph(store, embedder=FakeEmbedder(fail=True))
        bare = graph.clip("u1", "paper-1", "b").item
        with pytest.raises(UpstreamProviderError):
            graph.backfill_embedding(bare.id)
        assert not graph.get_item(bare.id).has_embedding

    def test_backfill_without_provider(self, graph):
        bare = graph.clip("u1", "paper-1", "b").item
        with pytest.raises(UpstreamProviderError):
            graph.backfill_embedding(bare.id)

    def test_backfill_missing_item(self, graph):
        with pytest.raises(NotFoundError):
            graph.backfill_embedding("nope", embedding=BASE)


class TestGraphViews:
    def test_recalculate_uses_default_threshold(self, store):
        graph = ClipGraph(store, threshold=0.6)
        graph.clip("u1", "paper-1", "a", embedding=BASE, threshold=0.99)
        graph.clip("u1", "paper-1", "b", embedding=vec_at(0.7), threshold=0.99)
        assert graph.graph("u1").edges == []

        assert len(graph.recalculate("u1")) == 1
        assert graph.recalculate("u1", 0.8) == []
        assert graph.graph("u1").edges == []

    def test_analyze(self, graph):
        graph.clip("u1", "paper-1", "a", embedding=BASE)
        graph.clip("u1", "paper-1", "b", embedding=vec_at(0.3))
        report = graph.analyze("u1", 0.2)
        assert report.total_pairs == 1
        assert report.pairs[0].connected
        assert graph.graph("u1").edges == []

    def test_attach_note(self, graph):
        item = graph.clip("u1", "paper-1", "a").item
        assert graph.attach_note(item.id, "check the appendix").note == "check the appendix"
        assert graph.get_item(item.id).note == "check the appendix"

    def test_stats(self, store):
        graph = ClipGraph(store, embedder=FakeEmbedder(), threshold=0.4)
        graph.clip("u1", "paper-1", "a", embedding=BASE)
        graph.clip("u2", "paper-1", "b", embedding=BASE)
        assert graph.stats() == {"items": 2, "edges": 0, "threshold": 0.4, "embeddings": True}

    def test_invalid_default_threshold(self, store):
        with pytest.raises(ValidationError):
            ClipGraph(store, threshold=0.0)


class TestFromSettings:
    def test_builds_sqlite_graph(self, temp_dir):
        settings = Settings(data_dir=temp_dir, embeddings_enabled=False, threshold=0.7)
        graph = ClipGraph.from_settings(settings)
        try:
            assert isinstance(graph.store.backend, SQLiteBackend)
            assert graph.embedder is None
            assert graph.threshold == 0.7
            graph.clip("u1", "paper-1", "a", embedding=BASE)
        finally:
            graph.close()
        assert settings.db_path.exists()

        reopened = ClipGraph.from_settings(settings)
        try:
            assert len(reopened.list_items("u1")) == 1
        finally:
            reopened.close()

    def test_embedder_configured_lazily(self, temp_dir):
        settings = Settings(data_dir=temp_dir, embedding_model="some-model")
        graph = ClipGraph.from_settings(settings)
        try:
            assert graph.embedder is not None
            assert graph.embedder.dims is None
        finally:
            graph.close()
