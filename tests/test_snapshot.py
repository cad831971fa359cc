"""
tests/test_snapshot.py - Tests for snapshot export, migration and sanitizing import
"""
import json

import pytest

from evosim_core.config import DEFAULT_PARAMETERS, DEFAULT_SCENARIO_CONFIGS, default_store
from evosim_core.snapshot import (LEGACY_VERSION, SNAPSHOT_VERSION, create_snapshot,
                                  normalize_scenario_id, parse_snapshot, serialize_snapshot)


def make_document(store=None, version=SNAPSHOT_VERSION, scenario_id='math', scenario_data='{}'):
    meta = {'timestamp': 1700000000000, 'scenarioId': scenario_id}
    if version is not None:
        meta['version'] = version
    return {'meta': meta, 'store': store if store is not None else default_store(),
            'scenarioData': scenario_data}


def parse(document):
    return parse_snapshot(json.dumps(document))


class TestRoundTrip:

    def test_export_import_is_identity_on_valid_store(self):
        snapshot = create_snapshot(default_store(), '{"genomes": []}', 'math', timestamp=1234)
        restored = parse_snapshot(serialize_snapshot(snapshot))
        assert restored == snapshot

    def test_indent_does_not_change_content(self):
        snapshot = create_snapshot(default_store(), 'payload', 'bio', timestamp=5)
        assert parse_snapshot(serialize_snapshot(snapshot, indent=2)) == parse_snapshot(serialize_snapshot(snapshot))

    def test_create_uses_current_version_and_clock(self):
        snapshot = create_snapshot(default_store(), '', 'math')
        assert snapshot['meta']['version'] == SNAPSHOT_VERSION
        assert snapshot['meta']['timestamp'] > 1600000000000

    def test_scenario_data_is_opaque(self):
        restored = parse(make_document(scenario_data='not json at all'))
        assert restored['scenarioData'] == 'not json at all'


class TestSanitizing:

    def test_values_are_clamped(self):
        store = default_store()
        store['control']['U'] = 2.5
        store['currentState'].update({'C': 1.5, 'D': -0.5, 'A': 0.4, 'alertRate': -3})
        restored = parse(make_document(store))
        assert restored['store']['control']['U'] == 1.0
        assert restored['store']['currentState']['C'] == 1.0
        assert restored['store']['currentState']['D'] == 0.0
        assert restored['store']['currentState']['A'] == 0.4
        assert restored['store']['currentState']['alertRate'] == 0

    def test_wrong_types_fall_back_to_defaults(self):
        store = default_store()
        store['sdeParameters']['dt'] = 'fast'
        store['control']['U'] = True
        store['bestAgency'] = 'high'
        store['aiHistory'] = {'not': 'a list'}
        store['currentState'] = None
        restored = parse(make_document(store))['store']
        assert restored['sdeParameters']['dt'] == DEFAULT_PARAMETERS['dt']
        assert restored['control']['U'] == 0.2
        assert restored['bestAgency'] == 0
        assert restored['aiHistory'] == []
        assert restored['currentState']['D'] == 0.6

    def test_non_finite_numbers_rejected(self):
        text = json.dumps(make_document()).replace('"k_CD": 0.12', '"k_CD": NaN')
        restored = parse_snapshot(text)
        assert restored['store']['sdeParameters']['k_CD'] == 0.12

    def test_scenario_config_rules(self):
        store = default_store()
        store['scenarioConfigs']['math'].update({'populationSize': 0, 'tasksPerGen': 7.9,
                                                 'mutationRate': 4, 'enableTheorems': 'yes'})
        store['scenarioConfigs']['agents']['baseTaskDifficulty'] = 0.2
        store['scenarioConfigs']['bio']['energyPerTick'] = -10
        store['scenarioConfigs']['erdos']['problemsPerGeneration'] = 99
        configs = parse(make_document(store))['store']['scenarioConfigs']
        assert configs['math']['populationSize'] == 1
        assert configs['math']['tasksPerGen'] == 7
        assert configs['math']['mutationRate'] == 1.0
        assert configs['math']['enableTheorems'] is True
        assert configs['agents']['baseTaskDifficulty'] == 1
        assert configs['bio']['energyPerTick'] == 0
        assert configs['erdos']['problemsPerGeneration'] == DEFAULT_SCENARIO_CONFIGS['erdos']['problemsPerGeneration']

    def test_missing_scenario_configs_use_defaults(self):
        store = default_store()
        del store['scenarioConfigs']
        restored = parse(make_document(store))
        assert restored['store']['scenarioConfigs'] == DEFAULT_SCENARIO_CONFIGS

    def test_unknown_scenario_id(self):
        assert parse(make_document(scenario_id='quantum'))['meta']['scenarioId'] == 'sde-v1'
        assert normalize_scenario_id(7) == 'sde-v1'
        assert normalize_scenario_id('erdos') == 'erdos'

    def test_bad_timestamp_replaced(self):
        document = make_document()
        document['meta']['timestamp'] = 'yesterday'
        restored = parse(document)
        assert isinstance(restored['meta']['timestamp'], int)


class TestVersions:

    def test_legacy_parameters_migrated(self):
        store = default_store()
        del store['sdeParameters']
        store['parameters'] = dict(DEFAULT_PARAMETERS, k_CD=0.5)
        restored = parse(make_document(store, version=LEGACY_VERSION))
        assert restored['meta']['version'] == SNAPSHOT_VERSION
        assert restored['store']['sdeParameters']['k_CD'] == 0.5
        assert 'parameters' not in restored['store']

    def test_missing_version_treated_as_legacy(self):
        store = default_store()
        store['parameters'] = dict(DEFAULT_PARAMETERS, tau=9)
        restored = parse(make_document(store, version=None))
        assert restored['store']['sdeParameters']['tau'] == 9

    def test_unknown_version_rejected(self):
        assert parse(make_document(version='9.9.9')) is None


class TestRejection:

    @pytest.mark.parametrize('text', ['', '{not json', '[1, 2]', '"snapshot"', 'null'])
    def test_unusable_text(self, text):
        assert parse_snapshot(text) is None

    def test_missing_store(self):
        document = make_document()
        del document['store']
        assert parse(document) is None

    def test_non_string_scenario_data(self):
        assert parse(make_document(scenario_data={'genomes': []})) is None

    def test_meta_not_an_object(self):
        document = make_document()
        document['meta'] = 'v2'
        assert parse(document) is None
