"""Tests for the sentence-transformers embedding provider.

The real model is never loaded: a fake module stands in for
sentence_transformers via sys.modules.
"""

import sys
import types

import numpy as np
import pytest

from clipgraph.embeddings import EmbedderStatus, SentenceTransformerEmbedder
from clipgraph.errors import UpstreamProviderError


class FakeModel:
    loads = 0

    def __init__(self, name):
        FakeModel.loads += 1
        self.name = name
        self.broken = False

    def get_sentence_embedding_dimension(self):
        return 3

    def encode(self, text):
        if self.broken:
            raise RuntimeError("CUDA out of memory")
        return np.array([0.1, 0.2, float(len(text))], dtype=np.float32)


@pytest.fixture
def fake_st(monkeypatch):
    FakeModel.loads = 0
    module = types.ModuleType("sentence_transformers")
    module.SentenceTransformer = FakeModel
    monkeypatch.setitem(sys.modules, "sentence_transformers", module)
    return module


def test_starts_degraded_and_unloaded(fake_st):
    embedder = SentenceTransformerEmbedder("mini")
    assert embedder.health.status == EmbedderStatus.DEGRADED
    assert embedder.dims is None
    assert FakeModel.loads == 0


def test_embed_loads_once_and_returns_floats(fake_st):
    embedder = SentenceTransformerEmbedder("mini")
    first = embedder.embed("abc")
    embedder.embed("abcd")

    assert FakeModel.loads == 1
    assert first == pytest.approx([0.1, 0.2, 3.0])
    assert all(type(x) is float for x in first)
    assert embedder.dims == 3
    assert embedder.health.status == EmbedderStatus.READY
    assert embedder.health.model == "mini"


def test_missing_library_marks_unavailable(monkeypatch):
    monkeypatch.setitem(sys.modules, "sentence_transformers", None)
    embedder = SentenceTransformerEmbedder()

    with pytest.raises(UpstreamProviderError):
        embedder.embed("text")
    assert embedder.health.status == EmbedderStatus.UNAVAILABLE

    # Stays unavailable without retrying the import
    with pytest.raises(UpstreamProviderError):
        embedder.embed("text")


def test_model_load_failure(monkeypatch):
    def refuse(name):
        raise OSError(f"{name} not found on the hub")

    module = types.ModuleType("sentence_transformers")
    module.SentenceTransformer = refuse
    monkeypatch.setitem(sys.modules, "sentence_transformers", module)

    embedder = SentenceTransformerEmbedder("no-such-model")
    with pytest.raises(UpstreamProviderError) as exc_info:
        embedder.embed("text")
    assert "no-such-model" in str(exc_info.value)
    assert embedder.health.status == EmbedderStatus.UNAVAILABLE


def test_encode_failure_degrades(fake_st):
    embedder = SentenceTransformerEmbedder("mini")
    embedder.embed("warm up")
    embedder._model.broken = True

    with pytest.raises(UpstreamProviderError):
        embedder.embed("text")
    assert embedder.health.status == EmbedderStatus.DEGRADED

    embedder._model.broken = False
    assert len(embedder.embed("text")) == 3
