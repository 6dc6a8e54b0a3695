"""Tests for the SQL and pandas storage readers.

Both readers must agree with the in-memory evaluation of a filter expression.
"""

import pandas as pd
import pytest

from core.filter_expression import MATCH_ALL, MATCH_NONE, And, Eq, Like, Or, Range, matches
from core.models import NormalizedAddress, SearchOptions
from utils.dataframe_store import DataFrameAddressStore
from utils.db_handler import DatabaseHandler

EXPRESSIONS = [
    MATCH_ALL,
    MATCH_NONE,
    Eq('via_code', 'carrera'),
    Eq('municipality', 'bogotá'),
    Range('primary_number', 55, 62),
    Range('via_label', 79, 83, digits_only=True),
    Like('neighborhood', 'CHAP'),
    Or((Eq('quadrant', 'sur'), Range('secondary_number', 100, 200))),
    And((Eq('municipality', 'bogotá'), Or((Eq('via_code', 'kr'), Eq('via_code', 'cr'))))),
]


def expected_ids(expr, rows):
    return [row['id'] for row in rows if matches(expr, row)]


@pytest.fixture
def db(tmp_path, sample_rows):
    handler = DatabaseHandler({'url': f"sqlite:///{tmp_path / 'addresses.db'}", 'table_name': 'addresses'})
    handler.connect()
    handler.create_address_table()
    handler.save_addresses(sample_rows)
    yield handler
    handler.disconnect()


@pytest.fixture(params=['sql', 'dataframe'])
def store(request, sample_rows, tmp_path):
    if request.param == 'dataframe':
        yield DataFrameAddressStore(pd.DataFrame(sample_rows))
        return
    handler = DatabaseHandler({'url': f"sqlite:///{tmp_path / 'store.db'}"})
    handler.create_address_table()
    handler.save_addresses(sample_rows)
    yield handler
    handler.disconnect()


class TestFilterParity:

    @pytest.mark.parametrize("expr", EXPRESSIONS)
    def test_select_matches_in_memory_evaluation(self, store, sample_rows, expr) -> None:
        rows = store.select(expr, limit=100)
        assert [row['id'] for row in rows] == expected_ids(expr, sample_rows)

    @pytest.mark.parametrize("expr", EXPRESSIONS)
    def test_count_matches_select(self, store, sample_rows, expr) -> None:
        assert store.count(expr) == len(expected_ids(expr, sample_rows))

    def test_planner_predicate(self, store, planner, sample_rows) -> None:
        query = NormalizedAddress(via_code='kr', via_label='81', primary_number=55, municipality='bogotá')
        expr = planner.build_predicate(query, SearchOptions(search_radius=5, include_neighborhoods=True))
        assert [row['id'] for row in store.select(expr, limit=100)] == ['r01', 'r02', 'r03']


class TestReading:

    def test_pagination_is_ordered_by_id(self, store) -> None:
        page = store.select(MATCH_ALL, limit=3, offset=3)
        assert [row['id'] for row in page] == ['r04', 'r05', 'r06']
        assert store.select(MATCH_ALL, limit=3, offset=6)[0]['id'] == 'r07'
        assert store.select(MATCH_ALL, limit=3, offset=9) == []

    def test_projection(self, store) -> None:
        rows = store.select(Eq('via_code', 'kr'), limit=10, projection=['id', 'via_code'])
        assert rows == [{'id': 'r01', 'via_code': 'kr'}]

    def test_missing_values_are_none(self, store) -> None:
        row = store.select(Eq('via_code', 'cr'), limit=1)[0]
        assert row['neighborhood'] is None
        assert row['primary_number'] == 62

    def test_select_by_ids_ignores_unknown(self, store) -> None:
        rows = store.select_by_ids(['r02', 'zz'])
        assert [row['id'] for row in rows] == ['r02']
        assert store.select_by_ids([]) == []

    def test_save_overwrites_same_id(self, store) -> None:
        store.save_addresses([{'id': 'r01', 'via_code': 'kr', 'primary_number': 99}])
        assert store.count(MATCH_ALL) == 7
        assert store.select_by_ids(['r01'])[0]['primary_number'] == 99


class TestDatabaseHandler:

    def test_connection_string_from_parts(self) -> None:
        handler = DatabaseHandler({'user': 'u', 'password': 'p', 'host': 'h', 'port': 3306, 'database': 'd'})
        assert handler._connection_string() == 'mysql+pymysql://u:p@h:3306/d?charset=utf8mb4'

    def test_url_takes_precedence(self) -> None:
        handler = DatabaseHandler({'url': 'sqlite://', 'user': 'u'})
        assert handler._connection_string() == 'sqlite://'

    def test_unknown_fields_are_ignored(self, db) -> None:
        db.save_addresses([{'id': 'n1', 'via_code': 'cl', 'color': 'blue'}])
        assert db.select_by_ids(['n1'])[0]['via_code'] == 'cl'

    def test_empty_save(self, db) -> None:
        db.save_addresses([])
        assert db.count(MATCH_ALL) == 7

    def test_disconnect_then_reconnect_on_demand(self, db) -> None:
        db.disconnect()
        assert db.engine is None
        assert db.count(Eq('via_code', 'tv')) == 1


class TestDataFrameAddressStore:

    def test_requires_id_column(self) -> None:
        with pytest.raises(ValueError):
            DataFrameAddressStore(pd.DataFrame({'via_code': ['kr']}))

    def test_ids_are_strings(self) -> None:
        store = DataFrameAddressStore(pd.DataFrame({'id': [10, 2], 'via_code': ['kr', 'cl']}))
        assert [row['id'] for row in store.select(MATCH_ALL, limit=10)] == ['10', '2']

    def test_numeric_via_label_column(self) -> None:
        store = DataFrameAddressStore(pd.DataFrame({'id': ['a', 'b'], 'via_label': [81.0, 85.0]}))
        rows = store.select(Range('via_label', 80, 82, digits_only=True), limit=10)
        assert [row['id'] for row in rows] == ['a']

    def test_missing_column_matches_nothing(self) -> None:
        store = DataFrameAddressStore(pd.DataFrame({'id': ['a']}))
        assert store.count(Eq('quadrant', 'sur')) == 0
        assert store.count(Range('via_label', 0, 100, digits_only=True)) == 0
        assert store.count(Like('neighborhood', 'x')) == 0

    def test_from_csv(self, tmp_path, sample_rows) -> None:
        path = tmp_path / 'addresses.csv'
        pd.DataFrame(sample_rows).to_csv(path, index=False)
        store = DataFrameAddressStore.from_csv(path)
        assert store.count(MATCH_ALL) == len(sample_rows)
        assert store.count(Range('via_label', 79, 83, digits_only=True)) == 4
