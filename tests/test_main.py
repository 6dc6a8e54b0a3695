"""Tests for the command line entry point."""

import copy
import json

import pandas as pd
import pytest

import main
from config.config import Config


@pytest.fixture(autouse=True)
def offline_providers(monkeypatch):
    """No embedding token and no vector index: searches stay structured."""
    monkeypatch.setitem(Config.EMBEDDING_CONFIG, 'api_token', None)
    monkeypatch.setitem(Config.VECTOR_INDEX_CONFIG, 'url', None)
    monkeypatch.setitem(Config.VECTOR_INDEX_CONFIG, 'path', None)


@pytest.fixture
def csv_path(tmp_path, sample_rows):
    path = tmp_path / 'addresses.csv'
    pd.DataFrame(sample_rows).to_csv(path, index=False)
    return path


class TestCli:

    def test_parse(self, capsys) -> None:
        assert main.main(['parse', 'CL 152B 73 36 bogotá']) == 0
        data = json.loads(capsys.readouterr().out)
        assert data['via_code'] == 'cl'
        assert data['via_label'] == '152b'
        assert data['address_struct'] == 'cl 152b #73 -36 bogotá'

    def test_search_with_csv(self, capsys, csv_path) -> None:
        assert main.main(['--csv', str(csv_path), 'search', 'KR 81 55 30', '--limit', '2']) == 0
        data = json.loads(capsys.readouterr().out)
        assert data['metadata']['source'] == 'structured'
        assert data['metadata']['total_found'] == 4
        assert data['metadata']['has_next_page'] is True
        assert data['matches'][0]['address']['id'] == 'r01'

    def test_invalid_limit_returns_error(self, csv_path) -> None:
        assert main.main(['--csv', str(csv_path), 'search', 'KR 81 55 30', '--limit', '500']) == 1

    def test_similar_with_csv(self, capsys, csv_path) -> None:
        assert main.main(['--csv', str(csv_path), 'similar', 'KR 81 55 30',
                          '--criteria', 'via_code_match', 'number_range_match']) == 0
        data = json.loads(capsys.readouterr().out)
        assert [item['id'] for item in data] == ['r01']

    def test_config_overrides(self, capsys, csv_path, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(Config, 'ALGORITHM_CONFIG', copy.deepcopy(Config.ALGORITHM_CONFIG))
        overrides = tmp_path / 'overrides.json'
        overrides.write_text(json.dumps({'search': {'default_limit': 1}}), encoding='utf-8')

        assert main.main(['--config', str(overrides), '--csv', str(csv_path), 'search', 'KR 81 55 30']) == 0
        data = json.loads(capsys.readouterr().out)
        assert len(data['matches']) == 1
        assert data['metadata']['limit'] == 1
        assert Config.ALGORITHM_CONFIG['search']['default_radius'] == 5

    def test_config_unknown_section(self, csv_path, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(Config, 'ALGORITHM_CONFIG', copy.deepcopy(Config.ALGORITHM_CONFIG))
        overrides = tmp_path / 'overrides.json'
        overrides.write_text(json.dumps({'serach': {'default_limit': 1}}), encoding='utf-8')

        assert main.main(['--config', str(overrides), '--csv', str(csv_path), 'search', 'KR 81 55 30']) == 2
        assert 'serach' not in Config.ALGORITHM_CONFIG

    def test_normalize_file(self, tmp_path) -> None:
        source = tmp_path / 'raw.csv'
        target = tmp_path / 'out' / 'normalized.csv'
        pd.DataFrame({'id': ['1', '2'], 'direccion': ['Carrera 7 45 10', 'TV 65 59 21 SUR']}).to_csv(
            source, index=False)

        assert main.main(['normalize-file', str(source), str(target), '--column', 'direccion']) == 0
        result = pd.read_csv(target)
        assert list(result['via_code']) == ['kr', 'tv']
        assert list(result['quadrant'].fillna('')) == ['', 'sur']

    def test_import_requires_database(self, csv_path) -> None:
        assert main.main(['--csv', str(csv_path), 'import', str(csv_path)]) == 2

    def test_init_db_and_import(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setitem(Config.DATABASE_CONFIG, 'url', f"sqlite:///{tmp_path / 'cli.db'}")
        source = tmp_path / 'raw.csv'
        pd.DataFrame({'id': ['a1', 'a2'], 'address_raw': ['KR 81 55 30', 'CL 26 68 40']}).to_csv(
            source, index=False)

        assert main.main(['init-db']) == 0
        assert main.main(['import', str(source)]) == 0

        store = main.DatabaseHandler(Config.DATABASE_CONFIG)
        try:
            rows = store.select_by_ids(['a1', 'a2'])
        finally:
            store.disconnect()
        by_id = {row['id']: row for row in rows}
        assert by_id['a1']['via_code'] == 'kr'
        assert by_id['a2']['primary_number'] == 68
