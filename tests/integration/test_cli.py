import pytest
from click.testing import CliRunner
from v2m.CLI.main import cli
import os
import yaml

CHART_DIR = os.path.join(os.path.dirname(__file__), '..', '..', 'charts', 'microservices')


@pytest.fixture
def chart(tmp_path):
    (tmp_path / "values.yaml").write_text(yaml.safe_dump({
        'namespace': 'shop',
        'services': {
            'inventory': {
                'port': 8083,
                'image': {'repository': 'inventory-service', 'tag': '${IMAGE_TAG:-1.0.0}'},
                'configEntries': {'DB_HOST': 'postgres-service'},
            },
        },
    }, sort_keys=False))
    (tmp_path / "values-prod.yaml").write_text("services:\n  inventory:\n    replicas: 2\n")
    return tmp_path


def test_cli_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['--help'])
    assert result.exit_code == 0
    assert 'Values to Manifests' in result.output
    assert 'render' in result.output


def test_cli_render_help():
    runner = CliRunner()
    result = runner.invoke(cli, ['render', '--help'])
    assert result.exit_code == 0
    assert '--env' in result.output
    assert '--set' in result.output


def test_cli_render(chart):
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(chart), 'render'])
    assert result.exit_code == 0
    docs = list(yaml.safe_load_all(result.output))
    assert [d['kind'] for d in docs] == ['ConfigMap', 'Deployment', 'Service']
    assert docs[1]['spec']['template']['spec']['containers'][0]['image'] == 'inventory-service:1.0.0'
    assert docs[2]['metadata']['namespace'] == 'shop'


def test_cli_render_env_and_set(chart):
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(chart), 'render', '-e', 'prod', '--set', 'global.imageRegistry=ghcr.io'])
    assert result.exit_code == 0
    deployment = list(yaml.safe_load_all(result.output))[1]
    assert deployment['spec']['replicas'] == 2
    assert deployment['spec']['template']['spec']['containers'][0]['image'] == 'ghcr.io/inventory-service:1.0.0'


def test_cli_render_to_file(chart, tmp_path):
    out = tmp_path / "manifests.yaml"
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(chart), 'render', '-o', str(out)])
    assert result.exit_code == 0
    assert out.read_bytes().startswith(b'---\napiVersion: v1\nkind: ConfigMap\n')


def test_cli_env_file(chart, tmp_path):
    env_file = tmp_path / "release.env"
    env_file.write_text("IMAGE_TAG=3.1.4\n")
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(chart), '--env-file', str(env_file), 'render'])
    assert result.exit_code == 0
    assert 'inventory-service:3.1.4' in result.output


def test_cli_values_from_envvar(chart):
    runner = CliRunner()
    result = runner.invoke(cli, ['validate'], env={'V2M_VALUES': str(chart / "values.yaml")})
    assert result.exit_code == 0
    assert 'OK: 1 service(s), 1 enabled' in result.output


def test_cli_validate_errors(chart):
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(chart), 'validate', '--set', 'services.inventory.replicas=0'])
    assert result.exit_code == 1
    assert 'Error: services.inventory.replicas: must be at least 1' in result.output


def test_cli_render_unknown_env(chart):
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(chart), 'render', '-e', 'staging'])
    assert result.exit_code == 1
    assert "Unknown environment 'staging' (known: prod)" in result.output


def test_cli_missing_values_file(tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', str(tmp_path), 'render'])
    assert result.exit_code == 1
    assert 'Error:' in result.output


def test_cli_envs():
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', CHART_DIR, 'envs'])
    assert result.exit_code == 0
    assert result.output.split() == ['dev', 'prod']


def test_cli_validate_chart():
    runner = CliRunner()
    result = runner.invoke(cli, ['-c', CHART_DIR, 'validate', '-e', 'prod'])
    assert result.exit_code == 0
    assert 'OK: 4 service(s), 4 enabled' in result.output
