"""Tests for data models, value cleaning and option validation."""

import math

import pytest

from core.exceptions import QueryInvalid
from core.models import (
    AddressSummary, MatchResult, NormalizedAddress, SearchMetadata, SearchOptions, SearchResult,
    VectorHit, clean_value, format_number, to_number,
)


class TestValueHelpers:

    @pytest.mark.parametrize("value", [None, float('nan'), '', '   '])
    def test_clean_value_missing(self, value) -> None:
        assert clean_value(value) is None

    def test_clean_value_keeps_values(self) -> None:
        assert clean_value('kr') == 'kr'
        assert clean_value(0) == 0

    @pytest.mark.parametrize("value, expected", [
        (55.0, 55),
        ('12', 12),
        ('12.5', 12.5),
        ('x', None),
        (None, None),
    ])
    def test_to_number(self, value, expected) -> None:
        assert to_number(value) == expected

    def test_integral_numbers_become_int(self) -> None:
        assert isinstance(to_number(55.0), int)

    def test_format_number(self) -> None:
        assert format_number(45.0) == '45'
        assert format_number(45.5) == '45.5'


class TestNormalizedAddress:

    def test_is_empty(self) -> None:
        assert NormalizedAddress().is_empty()
        assert not NormalizedAddress(quadrant='sur').is_empty()

    def test_to_dict_omits_absent_fields(self) -> None:
        data = NormalizedAddress(via_code='kr', via_label='7', primary_number=45).to_dict()
        assert data == {'via_code': 'kr', 'via_label': '7', 'primary_number': 45,
                        'address_struct': 'kr 7 #45'}

    def test_from_row_reads_camel_case_metadata(self) -> None:
        address = NormalizedAddress.from_row({
            'viaCode': 'kr', 'viaLabel': 81, 'primaryNumber': '55.0',
            'secondary_number': float('nan'), 'municipality': 'bogotá',
        })
        assert address.via_code == 'kr'
        assert address.via_label == '81'
        assert address.primary_number == 55
        assert address.secondary_number is None
        assert address.municipality == 'bogotá'

    def test_from_row_float_via_label(self) -> None:
        assert NormalizedAddress.from_row({'via_label': 81.0}).via_label == '81'
        assert NormalizedAddress.from_row({'via_label': 80.5}).via_label == '80.5'
        assert NormalizedAddress.from_row({'via_label': '80a'}).via_label == '80a'

    def test_snake_case_takes_precedence(self) -> None:
        address = NormalizedAddress.from_row({'via_code': 'cl', 'viaCode': 'kr'})
        assert address.via_code == 'cl'


class TestAddressSummary:

    def test_from_row(self) -> None:
        summary = AddressSummary.from_row({
            'id': 17, 'address_raw': 'KR 81 55 30', 'neighborhood': float('nan'),
            'transaction_value': 350000000.0, 'private_area_m2': '72.5',
        })
        assert summary.id == '17'
        assert summary.neighborhood is None
        assert summary.transaction_value == 350000000
        assert summary.private_area_m2 == 72.5
        assert summary.built_area_m2 is None

    def test_from_metadata(self) -> None:
        summary = AddressSummary.from_metadata(
            {'addressRaw': 'KR 81 55 30', 'transaction_value_cop': '350000000.0',
             'municipality': 'bogotá'},
            'a1',
        )
        assert summary.id == 'a1'
        assert summary.address_raw == 'KR 81 55 30'
        assert summary.transaction_value == 350000000
        assert summary.private_area_m2 is None


class TestVectorHit:

    def test_address_id_precedence(self) -> None:
        assert VectorHit('p1', 0.9, {'id': 'a1', 'addressId': 'a2'}).address_id == 'a1'
        assert VectorHit('p1', 0.9, {'addressId': 'a2'}).address_id == 'a2'
        assert VectorHit('p1', 0.9).address_id == 'p1'


class TestSearchOptions:

    def test_defaults_are_valid(self) -> None:
        SearchOptions().validate()

    @pytest.mark.parametrize("kwargs", [
        {'limit': 0},
        {'limit': 101},
        {'page': 0},
        {'search_radius': -1},
        {'search_radius': 2.5},
    ])
    def test_invalid(self, kwargs) -> None:
        with pytest.raises(QueryInvalid):
            SearchOptions(**kwargs).validate()

    def test_boundaries(self) -> None:
        SearchOptions(limit=1).validate()
        SearchOptions(limit=100, search_radius=0).validate()

    def test_offset(self) -> None:
        assert SearchOptions(page=3, limit=10).offset == 20


class TestSearchResult:

    def test_to_dict(self) -> None:
        result = SearchResult(
            normalized_address=NormalizedAddress(via_code='kr', via_label='81', primary_number=55),
            matches=[MatchResult(AddressSummary(id='a1'), similarity=0.9, distance=2.0)],
            metadata=SearchMetadata(total_found=1, search_radius=5, processing_time_ms=1.5,
                                    page=1, limit=10, has_next_page=False, has_prev_page=False),
        )
        data = result.to_dict()
        assert data['normalized_address']['address_struct'] == 'kr 81 #55'
        assert data['matches'][0]['address']['id'] == 'a1'
        assert data['matches'][0]['similarity'] == 0.9
        assert data['metadata']['source'] == 'structured'
        assert not math.isnan(data['metadata']['processing_time_ms'])
