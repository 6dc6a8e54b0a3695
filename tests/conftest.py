"""Pytest configuration and fixtures."""

import time
from typing import Any, Dict, List, Optional

import pandas as pd
import pytest

from core.address_normalizer import AddressParser
from core.gazetteer import Gazetteer, load_gazetteer
from core.proximity_planner import ProximityQueryPlanner
from core.similarity_calculator import SimilarityScorer
from utils.dataframe_store import DataFrameAddressStore


@pytest.fixture(scope="session")
def gazetteer() -> Gazetteer:
    """Gazetteer loaded from config/gazetteers.json."""
    return load_gazetteer()


@pytest.fixture
def parser(gazetteer: Gazetteer) -> AddressParser:
    return AddressParser(gazetteer)


@pytest.fixture
def scorer() -> SimilarityScorer:
    return SimilarityScorer()


@pytest.fixture
def planner(gazetteer: Gazetteer) -> ProximityQueryPlanner:
    return ProximityQueryPlanner(gazetteer)


def make_row(address_id: str, **fields: Any) -> Dict[str, Any]:
    """Storage row with every column present."""
    row = {
        'id': address_id,
        'address_raw': None,
        'address_norm': None,
        'address_canonical': None,
        'via_code': None,
        'via_label': None,
        'primary_number': None,
        'secondary_number': None,
        'tertiary_number': None,
        'quadrant': None,
        'neighborhood': None,
        'municipality': None,
        'department': None,
        'transaction_value': None,
        'private_area_m2': None,
        'built_area_m2': None,
    }
    row.update(fields)
    return row


@pytest.fixture
def sample_rows() -> List[Dict[str, Any]]:
    """Rows mixing canonical and raw via codes."""
    return [
        make_row('r01', address_raw='KR 81 55 30', via_code='kr', via_label='81',
                 primary_number=55, secondary_number=30, neighborhood='chapinero',
                 municipality='bogotá', transaction_value=350000000.0),
        make_row('r02', address_raw='CARRERA 81 57 12', via_code='carrera', via_label='81',
                 primary_number=57, secondary_number=12, neighborhood='chapinero alto',
                 municipality='bogotá'),
        make_row('r03', address_raw='CR 80A 62 10', via_code='cr', via_label='80a',
                 primary_number=62, secondary_number=10, municipality='bogotá'),
        make_row('r04', address_raw='CL 26 68 40', via_code='cl', via_label='26',
                 primary_number=68, secondary_number=40, quadrant='sur',
                 municipality='bogotá'),
        make_row('r05', address_raw='KR 81 90 10', via_code='carrera', via_label='81',
                 primary_number=90, secondary_number=10, municipality='medellín'),
        make_row('r06', address_raw='TV 65 59 21 SUR', via_code='tv', via_label='65',
                 primary_number=59, secondary_number=21, quadrant='sur',
                 neighborhood='kennedy', municipality='bogotá'),
        make_row('r07', address_raw='DG 80 7 100', via_code='dg', via_label='sin numero',
                 primary_number=7, secondary_number=100, municipality='bogotá'),
    ]


@pytest.fixture
def frame_store(sample_rows: List[Dict[str, Any]]) -> DataFrameAddressStore:
    return DataFrameAddressStore(pd.DataFrame(sample_rows))


class FakeEmbeddingProvider:
    """Embedding provider returning a fixed vector, or failing on demand."""

    def __init__(self, vector: Optional[List[float]] = None, error: Optional[Exception] = None,
                 delay: float = 0.0, dimension: int = 3):
        self.vector = vector or [1.0, 0.0, 0.0]
        self.error = error
        self.delay = delay
        self.dimension = dimension
        self.texts: List[str] = []

    def is_configured(self) -> bool:
        return True

    def embed(self, text: str) -> List[float]:
        self.texts.append(text)
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.vector)

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return [self.embed(text) for text in texts]


class ScriptedVectorIndex:
    """Vector index answering each query with the next scripted response."""

    def __init__(self, *responses: Any):
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def query(self, vector, top_k, min_score, municipality=None, neighborhood=None):
        self.calls.append({'top_k': top_k, 'min_score': min_score,
                           'municipality': municipality, 'neighborhood': neighborhood})
        response = self.responses.pop(0) if self.responses else []
        if isinstance(response, Exception):
            raise response
        return response


class RecordingStorage:
    """Storage reader that records calls and optionally fails."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    def count(self, expr) -> int:
        self.calls.append('count')
        if self.error is not None:
            raise self.error
        return 0

    def select(self, expr, limit, offset=0, projection=None):
        self.calls.append('select')
        if self.error is not None:
            raise self.error
        return []

    def select_by_ids(self, ids):
        self.calls.append('select_by_ids')
        if self.error is not None:
            raise self.error
        return []
