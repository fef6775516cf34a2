import re

import pytest

from firebase_devops.common.errors import ExportDetectionError, ValidationBlocked, VendorCommandError
from firebase_devops.features.deployment.domain.models import MB, DeploymentState
from firebase_devops.features.deployment.service.deployer import Deployer
from firebase_devops.features.deployment.service.preparation_service import (
    PreparationService,
    clean_scratch_directories,
    deployment_workspace,
    prepare_and_deploy,
)
from firebase_devops.schemas.deployment_schemas import PrepareDeployRequest
from firebase_devops.services.system.command_runner import CommandResult
from firebase_devops.tests.conftest import FakeRunner, answering, approve, write_service

PUBLIC_FUNCTIONS = ['queryProductScores', 'queryBrandScores', 'searchScores', 'publicApiHealth']


def scratch_dirs(config):
    if not config.scratch_root.exists():
        return []
    return sorted(config.scratch_root.glob('firebase-deployment-*'))


def make_service(config, runner=None, confirmer=None):
    return PreparationService(config, confirmer or approve(), runner or FakeRunner())


def test_prepare_assembles_and_keeps_directory(config):
    prepared = make_service(config).prepare(PrepareDeployRequest(export_strategy='regex'))

    deploy_dir = prepared.deploy_dir
    assert deploy_dir.parent == config.scratch_root
    assert re.match(r'firebase-deployment-\d+-', deploy_dir.name)
    assert (deploy_dir / 'services' / 'alpha-service' / 'index.js').is_file()
    assert (deploy_dir / 'services' / '.env').is_file()
    assert prepared.run.state is DeploymentState.VALIDATED
    assert prepared.manifest.service_names == ['alpha-service', 'beta-service']
    index = (deploy_dir / 'services' / 'index.js').read_text(encoding='utf-8')
    assert 'exports.alphaTwo = alpha_serviceService.alphaTwo;' in index


def test_services_file_controls_requires(config, tmp_path):
    write_service(config.services_path, 'gamma-service', ('gammaOne',))
    services_file = tmp_path / 'services.txt'
    services_file.write_text('gamma-service\nalpha-service\n', encoding='utf-8')

    prepared = make_service(config).prepare(
        PrepareDeployRequest(services_file=services_file, export_strategy='regex'))

    index = (prepared.deploy_dir / 'services' / 'index.js').read_text(encoding='utf-8')
    assert index.count("require('./gamma-service')") == 1
    assert index.count("require('./alpha-service')") == 1
    assert "require('./beta-service')" not in index
    assert index.count('require(') == 2
    assert index.index('gamma-service') < index.index('alpha-service')


def test_identical_inputs_give_identical_manifests(config):
    service = make_service(config)
    first = service.prepare(PrepareDeployRequest(export_strategy='regex')).deploy_dir
    second = service.prepare(PrepareDeployRequest(export_strategy='regex')).deploy_dir

    assert first != second
    for filename in ('firebase.json', 'package.json'):
        assert (first / filename).read_bytes() == (second / filename).read_bytes()


def test_public_api_only_exports_exactly_four_functions(config):
    public = write_service(config.services_path, 'public-api-service',
                           ('queryProductScores', 'queryBrandScores', 'searchScores', 'health', 'internalOnly'))
    assert public.is_dir()

    prepared = make_service(config).prepare(PrepareDeployRequest(public_api_only=True))

    index = (prepared.deploy_dir / 'services' / 'index.js').read_text(encoding='utf-8')
    exported = re.findall(r'^exports\.(\w+) =', index, re.MULTILINE)
    assert exported == PUBLIC_FUNCTIONS
    assert index.count('require(') == 1
    assert 'internalOnly' not in index
    assert sorted(p.name for p in (prepared.deploy_dir / 'services').iterdir() if p.is_dir()) == ['public-api-service']


def test_public_api_only_requires_allow_listed_exports(config):
    write_service(config.services_path, 'public-api-service', ('queryProductScores', 'queryBrandScores'))

    with pytest.raises(ExportDetectionError) as excinfo:
        make_service(config).prepare(PrepareDeployRequest(public_api_only=True))

    assert excinfo.value.service == 'public-api-service'
    assert 'searchScores' in excinfo.value.message
    assert 'health' in excinfo.value.message
    assert scratch_dirs(config) == []


def test_rejected_critical_service_aborts_and_cleans_up(config):
    write_service(config.services_path, 'small-service', ('small',), size_bytes=5 * MB)
    write_service(config.services_path, 'huge-service', ('huge',), size_bytes=60 * MB)
    confirmer = answering('n')

    with pytest.raises(ValidationBlocked) as excinfo:
        make_service(config, confirmer=confirmer).prepare(PrepareDeployRequest(export_strategy='regex'))

    assert excinfo.value.exit_code == 1
    assert len(confirmer.questions) == 1
    assert 'huge-service' in confirmer.questions[0]
    assert scratch_dirs(config) == []


def test_export_detection_failure_cleans_up(config):
    (config.services_path / 'beta-service' / 'index.js').write_text('module.exports = {};', encoding='utf-8')

    with pytest.raises(ExportDetectionError):
        make_service(config, runner=FakeRunner(available=())).prepare(PrepareDeployRequest())

    assert scratch_dirs(config) == []


def test_workspace_removed_on_interrupt(tmp_path):
    with pytest.raises(KeyboardInterrupt):
        with deployment_workspace(tmp_path) as path:
            assert path.is_dir()
            raise KeyboardInterrupt

    assert list(tmp_path.iterdir()) == []


def test_clean_scratch_directories_only_touches_deployment_dirs(tmp_path):
    (tmp_path / 'firebase-deployment-1-abc').mkdir()
    (tmp_path / 'firebase-deployment-2-def').mkdir()
    (tmp_path / 'unrelated').mkdir()

    removed = clean_scratch_directories(tmp_path)

    assert len(removed) == 2
    assert [p.name for p in tmp_path.iterdir()] == ['unrelated']


def test_deploy_remote_retries_and_always_removes_directory(config):
    attempts = []

    def responder(call):
        if call.argv[:2] == ['firebase', 'deploy']:
            attempts.append(call)
            return CommandResult(call.argv, 2, '', '')

    runner = FakeRunner(responder=responder)
    sleeps = []
    preparation = make_service(config, runner=runner)
    deployer = Deployer(config, approve(), runner, sleep=sleeps.append)

    with pytest.raises(VendorCommandError) as excinfo:
        prepare_and_deploy(preparation, deployer, PrepareDeployRequest(export_strategy='regex'))

    assert excinfo.value.exit_code == 2
    assert len(attempts) == 3
    assert sleeps == [10.0, 10.0]
    assert scratch_dirs(config) == []


def test_deploy_remote_success_removes_directory(config):
    runner = FakeRunner()
    run = prepare_and_deploy(make_service(config, runner=runner),
                             Deployer(config, approve(), runner, sleep=lambda s: None),
                             PrepareDeployRequest(export_strategy='regex'))

    assert run.state is DeploymentState.DEPLOYED
    assert scratch_dirs(config) == []


def test_deploy_remote_asks_each_gate_once(config):
    write_service(config.services_path, 'huge-service', ('huge',), size_bytes=60 * MB)
    runner = FakeRunner()
    confirmer = answering('y', 'y')

    run = prepare_and_deploy(make_service(config, runner=runner, confirmer=confirmer),
                             Deployer(config, confirmer, runner, sleep=lambda s: None),
                             PrepareDeployRequest(export_strategy='regex'))

    assert run.state is DeploymentState.DEPLOYED
    assert len(confirmer.questions) == 2
    assert 'huge-service' in confirmer.questions[0]
    assert 'demo-project' in confirmer.questions[1]
