import pytest

from firebase_devops.common.errors import PreconditionError, ValidationBlocked, VendorCommandError
from firebase_devops.features.deployment.domain.models import DeploymentState
from firebase_devops.features.deployment.service.deployer import Deployer
from firebase_devops.schemas.deployment_schemas import DeployFromRequest, FunctionRequest
from firebase_devops.services.system.command_runner import CommandResult
from firebase_devops.tests.conftest import FakeRunner, approve, reject, write_service


@pytest.fixture
def deploy_dir(tmp_path):
    deploy_dir = tmp_path / 'firebase-deployment-1-x'
    services = deploy_dir / 'services'
    services.mkdir(parents=True)
    (deploy_dir / 'firebase.json').write_text('{}', encoding='utf-8')
    (deploy_dir / 'package.json').write_text('{}', encoding='utf-8')
    write_service(services, 'api-service', ('api',))
    return deploy_dir


def test_deploy_runs_install_then_firebase_deploy(config, deploy_dir):
    runner = FakeRunner(available=('firebase', 'npm', 'gcloud'))

    run = Deployer(config, approve(), runner).deploy_directory(
        DeployFromRequest(deploy_dir=deploy_dir, project_id='demo-project', force=True))

    commands = runner.commands()
    assert commands[0] == ['firebase', 'projects:list']
    assert commands[1][:4] == ['npm', 'install', 'firebase-functions', 'firebase-admin']
    assert '--no-save' in commands[1]
    assert commands[2] == ['firebase', 'deploy', '--only', 'functions', '--project', 'demo-project', '--force']
    assert commands[3][:3] == ['gcloud', 'functions', 'list']
    deploy_call = runner.calls[2]
    assert deploy_call.env['FIRESTORE_EMULATOR_HOST'] == ''
    assert deploy_call.env['FUNCTIONS_EMULATOR'] == 'false'
    assert run.state is DeploymentState.DEPLOYED


def test_deploy_failure_propagates_vendor_exit_code_without_retry(config, deploy_dir):
    def responder(call):
        if call.argv[:2] == ['firebase', 'deploy']:
            (deploy_dir / 'services' / 'node_modules').mkdir(exist_ok=True)
            return CommandResult(call.argv, 3, '', '')

    runner = FakeRunner(responder=responder)

    with pytest.raises(VendorCommandError) as excinfo:
        Deployer(config, approve(), runner).deploy_directory(
            DeployFromRequest(deploy_dir=deploy_dir, project_id='demo-project'))

    assert excinfo.value.exit_code == 3
    assert len([c for c in runner.commands() if c[:2] == ['firebase', 'deploy']]) == 1
    assert not (deploy_dir / 'services' / 'node_modules').exists()


def test_rejecting_production_prompt_aborts_before_install(config, deploy_dir):
    runner = FakeRunner()

    with pytest.raises(ValidationBlocked):
        Deployer(config, reject(), runner).deploy_directory(
            DeployFromRequest(deploy_dir=deploy_dir, project_id='demo-project'))

    assert not any(c[0] == 'npm' for c in runner.commands())


def test_unauthenticated_session_is_a_precondition_failure(config, deploy_dir):
    runner = FakeRunner(responder=lambda call: CommandResult(call.argv, 1, '', 'not logged in'))

    with pytest.raises(PreconditionError) as excinfo:
        Deployer(config, approve(), runner).deploy_directory(
            DeployFromRequest(deploy_dir=deploy_dir, project_id='demo-project'))

    assert excinfo.value.hint == 'Run: firebase login'


def test_missing_firebase_cli(config, deploy_dir):
    with pytest.raises(PreconditionError):
        Deployer(config, approve(), FakeRunner(available=('npm',))).check_preconditions(deploy_dir)


def test_missing_directory(config, tmp_path):
    with pytest.raises(PreconditionError):
        Deployer(config, approve(), FakeRunner()).check_preconditions(tmp_path / 'gone')


def test_remove_function_builds_delete_command(config):
    runner = FakeRunner()

    Deployer(config, approve(), runner).remove_function(
        FunctionRequest(function_name='oldHandler', project_id='demo-project', region='us-central1'))

    assert runner.commands() == [[
        'firebase', 'functions:delete', 'oldHandler', '--project', 'demo-project',
        '--region', 'us-central1', '--force',
    ]]


def test_remove_function_requires_confirmation(config):
    runner = FakeRunner()

    with pytest.raises(ValidationBlocked):
        Deployer(config, reject(), runner).remove_function(
            FunctionRequest(function_name='oldHandler', project_id='demo-project'))

    assert runner.commands() == []


def test_deploy_function_targets_single_function(config):
    runner = FakeRunner()

    Deployer(config, approve(), runner).deploy_function(
        FunctionRequest(function_name='api', project_id='demo-project'))

    assert runner.commands() == [['firebase', 'deploy', '--only', 'functions:api', '--project', 'demo-project']]
    assert runner.calls[0].env['PUBSUB_EMULATOR_HOST'] == ''
