import json
from pathlib import Path

import pytest

from firebase_devops import manage
from firebase_devops.features.deployment.domain.models import MB
from firebase_devops.tests.conftest import answering, write_service


@pytest.fixture
def cli_env(monkeypatch, tmp_path, project):
    scratch = tmp_path / 'scratch'
    monkeypatch.setenv('PROJECT_ROOT', str(project))
    monkeypatch.setenv('DEPLOYMENT_SCRATCH_ROOT', str(scratch))
    monkeypatch.setenv('FIREBASE_PROJECT_ID', 'demo-project')
    for name in ('FIRESTORE_EMULATOR_HOST', 'USE_FIREBASE_EMULATOR', 'CONFIRM_POLICY', 'SERVICES_DIR'):
        monkeypatch.delenv(name, raising=False)
    return scratch


def scratch_dirs(scratch):
    return list(scratch.glob('firebase-deployment-*')) if scratch.exists() else []


def test_prepare_deploy_prints_directory_on_stdout(cli_env, capsys):
    exit_code = manage.main(['--yes', 'prepare-deploy', '--export-strategy', 'regex'])

    deploy_dir = Path(capsys.readouterr().out.strip())
    assert exit_code == 0
    assert scratch_dirs(cli_env) == [deploy_dir]
    assert (deploy_dir / 'services' / 'index.js').is_file()


def test_declined_critical_service_exits_1_and_leaves_nothing(cli_env, project, monkeypatch, capsys):
    write_service(project / 'services', 'small-service', ('small',), size_bytes=5 * MB)
    write_service(project / 'services', 'huge-service', ('huge',), size_bytes=60 * MB)
    confirmer = answering('n')
    monkeypatch.setattr(manage, 'Confirmer', lambda policy: confirmer)

    exit_code = manage.main(['prepare-deploy', '--export-strategy', 'regex'])

    assert exit_code == 1
    assert len(confirmer.questions) == 1
    assert 'huge-service' in confirmer.questions[0]
    assert scratch_dirs(cli_env) == []
    assert capsys.readouterr().out == ''


def test_no_flag_rejects_gates(cli_env, project):
    write_service(project / 'services', 'huge-service', ('huge',), size_bytes=60 * MB)

    assert manage.main(['--no', 'prepare-deploy', '--export-strategy', 'regex']) == 1
    assert scratch_dirs(cli_env) == []


def test_argument_errors_exit_1(cli_env, capsys):
    for argv in ([], ['deploy-from'], ['prepare-deploy', '--copy-mode', 'bogus'], ['--yes', '--no', 'clean-deploy']):
        with pytest.raises(SystemExit) as excinfo:
            manage.main(argv)
        assert excinfo.value.code == 1
    assert 'usage:' in capsys.readouterr().err


def test_invalid_request_values_exit_1(cli_env):
    assert manage.main(['deploy-from', '--dir', str(cli_env), '--attempts', '0']) == 1


def test_invalid_configuration_exits_1(cli_env, monkeypatch):
    monkeypatch.setenv('CONFIRM_POLICY', 'maybe')

    assert manage.main(['clean-deploy']) == 1


def test_clean_deploy_reports_removed_directories(cli_env, capsys):
    (cli_env / 'firebase-deployment-1-abc').mkdir(parents=True)

    assert manage.main(['clean-deploy']) == 0

    output = json.loads(capsys.readouterr().out)
    assert output == {'removed': [str(cli_env / 'firebase-deployment-1-abc')]}


def test_every_command_is_registered():
    parser = manage.build_parser()
    subparsers = next(a for a in parser._actions if a.dest == 'command')

    assert set(subparsers.choices) == {
        'start-local', 'start-local-min', 'stop-local', 'status-local', 'restart-local', 'clean-local',
        'deploy-local', 'prepare-deploy', 'deploy-from', 'deploy-remote', 'deploy-function',
        'remove-function', 'clean-deploy', 'pubsub-status', 'check-topics', 'check-subs', 'create-topic',
        'create-topics', 'ensure-topics', 'delete-topic', 'test-pubsub', 'check-resources',
        'cleanup-resources', 'monitor-resources', 'preserve-data', 'infer-schema', 'share-emulators',
    }
