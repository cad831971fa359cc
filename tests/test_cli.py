"""
tests/test_cli.py - Tests for the evosim command-line interface
"""
import json

from click.testing import CliRunner

from evosim_core.cli import build_snapshot, cli
from evosim_core.config import default_store
from evosim_core.population import Population
from evosim_core.run_context import RunContext
from evosim_core.snapshot import SNAPSHOT_VERSION, parse_snapshot


def read_snapshot(path):
    with open(path) as f:
        return parse_snapshot(f.read())


def evolve(runner, out, *extra):
    return runner.invoke(cli, ['evolve', '-s', '42', '-p', '6', '-g', '3', '-o', str(out), *extra])


class TestEvolve:

    def test_writes_snapshot(self, tmp_path):
        out = tmp_path / 'runs' / 'snapshot.json'
        result = evolve(CliRunner(), out)
        assert result.exit_code == 0, result.output
        assert 'Snapshot saved' in result.output

        snapshot = read_snapshot(out)
        assert snapshot['meta']['version'] == SNAPSHOT_VERSION
        assert snapshot['meta']['scenarioId'] == 'math'
        assert snapshot['store']['scenarioConfigs']['math']['populationSize'] == 6
        assert snapshot['store']['currentState']['generation'] == 3
        pop = Population.from_payload(snapshot['scenarioData'])
        assert pop.generation == 3
        assert len(pop.genomes) == 6

    def test_same_seed_same_payload(self, tmp_path):
        runner = CliRunner()
        evolve(runner, tmp_path / 'a.json')
        evolve(runner, tmp_path / 'b.json')
        a = read_snapshot(tmp_path / 'a.json')
        b = read_snapshot(tmp_path / 'b.json')
        assert a['scenarioData'] == b['scenarioData']

    def test_verbose_lists_genomes(self, tmp_path):
        result = evolve(CliRunner(), tmp_path / 's.json', '-v', '--no-guide')
        assert result.exit_code == 0, result.output
        assert 'TOP 3 GENOMES' in result.output
        assert 'Guide: no' in result.output


class TestResume:

    def test_resume_continues_run(self, tmp_path):
        runner = CliRunner()
        first = tmp_path / 'first.json'
        second = tmp_path / 'second.json'
        evolve(runner, first)

        result = runner.invoke(cli, ['resume', '-i', str(first), '-g', '2', '-o', str(second)])
        assert result.exit_code == 0, result.output
        assert 'Resuming at generation 3' in result.output
        pop = Population.from_payload(read_snapshot(second)['scenarioData'])
        assert pop.generation == 5

    def test_resume_matches_longer_run(self, tmp_path):
        runner = CliRunner()
        split = tmp_path / 'split.json'
        straight = tmp_path / 'straight.json'
        evolve(runner, split)
        runner.invoke(cli, ['resume', '-i', str(split), '-g', '2'])
        runner.invoke(cli, ['evolve', '-s', '42', '-p', '6', '-g', '5', '-o', str(straight)])
        assert read_snapshot(split)['scenarioData'] == read_snapshot(straight)['scenarioData']

    def test_unreadable_snapshot(self, tmp_path):
        bad = tmp_path / 'bad.json'
        bad.write_text('{not json')
        result = CliRunner().invoke(cli, ['resume', '-i', str(bad)])
        assert result.exit_code == 1
        assert bad.read_text() == '{not json'

    def test_snapshot_without_population(self, tmp_path):
        path = tmp_path / 'empty.json'
        path.write_text(json.dumps({'meta': {'version': SNAPSHOT_VERSION}, 'store': {}, 'scenarioData': ''}))
        result = CliRunner().invoke(cli, ['resume', '-i', str(path)])
        assert result.exit_code == 1

    def test_imported_store_is_not_modified(self):
        pop = Population(4, RunContext(42))
        pop.run(2)
        store = default_store()
        before = json.dumps(store, sort_keys=True)

        snapshot = build_snapshot(pop, store)
        assert json.dumps(store, sort_keys=True) == before
        assert snapshot['store'] is not store
        assert snapshot['store']['currentState']['generation'] == 2
        assert snapshot['store']['scenarioConfigs']['math']['populationSize'] == 4

    def test_missing_file(self, tmp_path):
        result = CliRunner().invoke(cli, ['resume', '-i', str(tmp_path / 'nope.json')])
        assert result.exit_code != 0


class TestInspect:

    def test_summary(self, tmp_path):
        out = tmp_path / 'snapshot.json'
        evolve(CliRunner(), out)
        result = CliRunner().invoke(cli, ['inspect', '-i', str(out)])
        assert result.exit_code == 0, result.output
        assert f'Version: {SNAPSHOT_VERSION}' in result.output
        assert 'Scenario: math' in result.output
        assert 'Population: 6 genomes at generation 3, seed 42' in result.output

    def test_foreign_scenario_data(self, tmp_path):
        path = tmp_path / 'foreign.json'
        path.write_text(json.dumps({'meta': {'version': SNAPSHOT_VERSION, 'scenarioId': 'bio'},
                                    'store': {}, 'scenarioData': 'cells'}))
        result = CliRunner().invoke(cli, ['inspect', '-i', str(path)])
        assert result.exit_code == 0, result.output
        assert 'Scenario: bio' in result.output
        assert '(no population payload)' in result.output

    def test_invalid_snapshot(self, tmp_path):
        path = tmp_path / 'bad.json'
        path.write_text('[]')
        result = CliRunner().invoke(cli, ['inspect', '-i', str(path)])
        assert result.exit_code == 1


class TestVerify:

    def test_verify_passes(self):
        result = CliRunner().invoke(cli, ['verify', '-s', '42', '-p', '6', '-g', '4'])
        assert result.exit_code == 0, result.output
        assert 'PASS' in result.output
