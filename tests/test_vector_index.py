"""Tests for the vector index adapters."""

import uuid

import pytest
from qdrant_client import QdrantClient

from core.exceptions import ProviderUnavailable
from core.vector_index import InMemoryVectorIndex, QdrantVectorIndex, point_id

RECORDS = [
    {'id': 'r01', 'values': [1.0, 0.0, 0.0], 'metadata': {'municipality': 'bogotá', 'neighborhood': 'chapinero'}},
    {'id': 'r02', 'values': [0.8, 0.6, 0.0], 'metadata': {'municipality': 'bogotá'}},
    {'id': 'r03', 'values': [0.0, 1.0, 0.0], 'metadata': {'municipality': 'medellín'}},
]


def hit_ids(hits):
    return [hit.id for hit in hits]


class TestPointId:

    def test_stable_uuid(self) -> None:
        assert point_id('r01') == point_id('r01')
        assert point_id('r01') != point_id('r02')
        uuid.UUID(point_id('r01'))


@pytest.fixture
def memory_index() -> InMemoryVectorIndex:
    index = InMemoryVectorIndex()
    index.upsert(RECORDS)
    return index


class TestInMemoryVectorIndex:

    def test_scores_descending(self, memory_index) -> None:
        hits = memory_index.query([1.0, 0.0, 0.0], top_k=10, min_score=0.0)
        assert hit_ids(hits) == ['r01', 'r02', 'r03']
        assert hits[0].score == pytest.approx(1.0)
        assert hits[1].score == pytest.approx(0.8)

    def test_min_score_and_top_k(self, memory_index) -> None:
        assert hit_ids(memory_index.query([1.0, 0.0, 0.0], top_k=10, min_score=0.5)) == ['r01', 'r02']
        assert hit_ids(memory_index.query([1.0, 0.0, 0.0], top_k=1, min_score=0.0)) == ['r01']

    def test_region_filter(self, memory_index) -> None:
        hits = memory_index.query([1.0, 0.0, 0.0], top_k=10, min_score=0.0, municipality='medellín')
        assert hit_ids(hits) == ['r03']
        hits = memory_index.query([1.0, 0.0, 0.0], top_k=10, min_score=0.0,
                                  municipality='bogotá', neighborhood='chapinero')
        assert hit_ids(hits) == ['r01']

    def test_metadata_carries_address_id(self, memory_index) -> None:
        hit = memory_index.query([0.0, 1.0, 0.0], top_k=1, min_score=0.0)[0]
        assert hit.metadata['id'] == 'r03'
        assert hit.address_id == 'r03'

    def test_zero_query_vector(self, memory_index) -> None:
        assert memory_index.query([0.0, 0.0, 0.0], top_k=10, min_score=0.0) == []

    def test_delete_and_clear(self, memory_index) -> None:
        memory_index.delete(['r01'])
        assert memory_index.stats()['points_count'] == 2
        memory_index.clear()
        assert memory_index.query([1.0, 0.0, 0.0], top_k=10, min_score=0.0) == []


class TestQdrantVectorIndex:

    def test_unconfigured(self) -> None:
        with pytest.raises(ProviderUnavailable):
            QdrantVectorIndex({})

    @pytest.fixture
    def qdrant_index(self) -> QdrantVectorIndex:
        index = QdrantVectorIndex({'collection_name': 'test-addresses'}, client=QdrantClient(':memory:'))
        index.ensure_collection(3)
        index.upsert(RECORDS)
        return index

    def test_ensure_collection_is_idempotent(self, qdrant_index) -> None:
        qdrant_index.ensure_collection(3)
        assert qdrant_index.stats()['points_count'] == 3

    def test_query(self, qdrant_index) -> None:
        hits = qdrant_index.query([1.0, 0.0, 0.0], top_k=10, min_score=0.5)
        assert [hit.address_id for hit in hits] == ['r01', 'r02']
        assert hits[0].id == point_id('r01')
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)

    def test_query_with_region(self, qdrant_index) -> None:
        hits = qdrant_index.query([1.0, 1.0, 0.0], top_k=10, min_score=0.1, municipality='medellín')
        assert [hit.address_id for hit in hits] == ['r03']

    def test_delete_and_clear(self, qdrant_index) -> None:
        qdrant_index.delete(['r02'])
        assert qdrant_index.stats()['points_count'] == 2
        qdrant_index.clear(3)
        assert qdrant_index.stats()['points_count'] == 0
