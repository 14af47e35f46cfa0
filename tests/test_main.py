"""Tests for the command line entry point."""

import json
import logging

import pytest

from spaceplan.main import EXIT_INVALID_INPUT, EXIT_OK, build_config, main, parse_args
from spaceplan.utils import error_handling


@pytest.fixture(autouse=True)
def restore_logging():
    """Fixture removing the handlers installed by main."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in error_handling._installed_handlers:
        root.removeHandler(handler)
        handler.close()
    error_handling._installed_handlers.clear()
    root.setLevel(level)


class TestArguments:
    """Test argument parsing and overrides."""

    def test_source_is_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_sources_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse_args(['--demo', 'open', '--floor-plan', 'plan.json'])

    def test_overrides(self):
        args = parse_args(['--demo', 'open', '--quick-mode', '--population', '20', '--seed', '4', '--workers', '2'])
        config = build_config(args)
        assert config.extraction.grid_resolution == 100.0
        assert config.placement.genetic.population_size == 20
        assert config.placement.genetic.generations == 10
        assert config.placement.seed == 4
        assert config.placement.workers == 2


class TestMain:
    """Test complete command line runs."""

    def test_demo_run(self, tmp_path):
        code = main(['--demo', 'open', '--quick-mode', '--seed', '1', '--output-dir', str(tmp_path)])
        assert code == EXIT_OK

        result = json.loads((tmp_path / 'analysis_result.json').read_text())
        assert result['metrics']['totalBlocks'] == len(result['blocks'])
        run_info = json.loads((tmp_path / 'run_info.json').read_text())
        assert run_info['source'] == 'demo:open'
        assert run_info['configuration']['placement']['seed'] == 1
        assert set(run_info['performance']['stages']['operations']) == {
            'usable_area_extraction', 'placement_optimization', 'pathway_generation'}

    def test_floor_plan_file(self, tmp_path):
        plan = {
            'unit': 'm',
            'walls': [],
            'bounds': [{'x': 0, 'y': 0}, {'x': 8, 'y': 0}, {'x': 8, 'y': 6}, {'x': 0, 'y': 6}],
        }
        plan_path = tmp_path / 'plan.json'
        plan_path.write_text(json.dumps(plan))
        out = tmp_path / 'out'
        code = main(['--floor-plan', str(plan_path), '--quick-mode', '--generations', '2',
                     '--output-dir', str(out), '--log-file', str(tmp_path / 'run.log')])
        assert code == EXIT_OK
        assert (out / 'analysis_result.json').exists()
        assert "Process completed successfully" in (tmp_path / 'run.log').read_text()

    def test_missing_floor_plan(self, tmp_path):
        code = main(['--floor-plan', str(tmp_path / 'missing.json'), '--output-dir', str(tmp_path)])
        assert code == EXIT_INVALID_INPUT

    def test_invalid_config(self, tmp_path):
        config_path = tmp_path / 'config.json'
        config_path.write_text(json.dumps({'pathways': {'width': -5}}))
        code = main(['--demo', 'open', '--config', str(config_path), '--output-dir', str(tmp_path)])
        assert code == EXIT_INVALID_INPUT

    def test_invalid_floor_plan(self, tmp_path):
        plan_path = tmp_path / 'plan.json'
        plan_path.write_text(json.dumps({'bounds': [{'x': 0, 'y': 0}, {'x': 1, 'y': 0}]}))
        code = main(['--floor-plan', str(plan_path), '--quick-mode', '--output-dir', str(tmp_path)])
        assert code == EXIT_INVALID_INPUT

    def test_profile_output(self, tmp_path):
        code = main(['--demo', 'open', '--quick-mode', '--generations', '1', '--profile',
                     '--output-dir', str(tmp_path)])
        assert code == EXIT_OK
        assert (tmp_path / 'profile.txt').read_text()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
