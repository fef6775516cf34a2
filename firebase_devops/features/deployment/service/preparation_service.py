"""
prepare-deploy: assembles a deployment directory from a services tree.

The directory lives under <scratch_root>/firebase-deployment-<timestamp>-*. It is
removed on every failure path (validation abort, exception, Ctrl-C); on success
it is handed to the caller, who either keeps it (prepare-deploy) or deploys and
removes it (deploy-remote).
"""
import shutil
import tempfile
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import ExportDetectionError, PreconditionError, ValidationBlocked
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.features.deployment.domain.models import (
    DeploymentManifest,
    DeploymentRun,
    DeploymentState,
    ServiceDescriptor,
    ValidationReport,
)
from firebase_devops.features.deployment.service import validator
from firebase_devops.features.deployment.service.deployer import Deployer
from firebase_devops.features.deployment.service.export_inspector import ExportInspector
from firebase_devops.features.deployment.service.file_copier import CopyMode, FileCopier
from firebase_devops.features.deployment.service.manifest_synthesizer import (
    ManifestSynthesizer,
    production_env_overrides,
)
from firebase_devops.features.deployment.service.service_tree_reader import (
    ServiceTreeReader,
    read_services_file,
)
from firebase_devops.schemas.deployment_schemas import DeployFromRequest, PrepareDeployRequest
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.confirmation import Confirmer
from firebase_devops.services.system.logger_service import get_logger, log_stage

logger = get_logger(__name__)

SCRATCH_PREFIX = 'firebase-deployment-'


@contextmanager
def deployment_workspace(scratch_root: Path, keep_on_success: bool = True,
                         clock: Callable[[], float] = time.time) -> Iterator[Path]:
    """
    Scoped scratch directory.

    Deleted when the block raises (including KeyboardInterrupt), and also on
    success unless keep_on_success is set.
    """
    scratch_root = Path(scratch_root)
    scratch_root.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=f"{SCRATCH_PREFIX}{int(clock())}-", dir=str(scratch_root)))
    logger.debug("Created deployment directory", extra={"deploy_dir": str(path)})
    succeeded = False
    try:
        yield path
        succeeded = True
    finally:
        if not (succeeded and keep_on_success):
            shutil.rmtree(path, ignore_errors=True)
            logger.info(f"🧹 Removed deployment directory {path}")


def clean_scratch_directories(scratch_root: Path) -> List[Path]:
    """Remove every leftover firebase-deployment-* directory under scratch_root."""
    scratch_root = Path(scratch_root)
    if not scratch_root.is_dir():
        return []
    removed = []
    for path in sorted(scratch_root.glob(f"{SCRATCH_PREFIX}*")):
        if path.is_dir():
            shutil.rmtree(path, ignore_errors=True)
            removed.append(path)
    logger.info(f"🧹 Removed {len(removed)} old deployment director{'y' if len(removed) == 1 else 'ies'}",
                extra={"scratch_root": str(scratch_root)})
    return removed


@dataclass
class PreparedDeployment:
    """
    Attributes:
        deploy_dir (Path): Assembled deployment directory
        manifest (DeploymentManifest): What was assembled
        report (ValidationReport): Validation result after the gates
        run (DeploymentRun): Lifecycle, VALIDATED on return
    """
    deploy_dir: Path
    manifest: DeploymentManifest
    report: ValidationReport
    run: DeploymentRun


class PreparationService(BaseService):
    def __init__(self, config: ToolkitConfig, confirmer: Confirmer,
                 runner: Optional[CommandRunner] = None,
                 clock: Callable[[], float] = time.time):
        super().__init__(config, runner)
        self.confirmer = confirmer
        self.clock = clock

    def prepare(self, request: PrepareDeployRequest) -> PreparedDeployment:
        """prepare-deploy: assemble and validate; the directory is kept on success."""
        with deployment_workspace(self.config.scratch_root, keep_on_success=True,
                                  clock=self.clock) as deploy_dir:
            prepared = self.assemble(request, deploy_dir)
        logger.info(validator.summarize(prepared.report, prepared.deploy_dir))
        logger.info(f"✅ Deployment directory prepared: {prepared.deploy_dir}")
        return prepared

    def _resolve_dirs(self, request: PrepareDeployRequest):
        project_root = Path(request.project_dir or self.config.project_root).resolve()
        services_dir = request.services_dir or self.config.services_dir
        if services_dir is None:
            services_dir = project_root / 'services'
        elif not Path(services_dir).is_absolute() and not Path(services_dir).exists():
            services_dir = project_root / services_dir
        if not project_root.is_dir():
            raise PreconditionError(f"Project directory not found: {project_root}")
        return project_root, Path(services_dir).resolve()

    def _selection(self, request: PrepareDeployRequest) -> Optional[List[str]]:
        if request.public_api_only:
            return [self.config.public_api_service]
        if request.services_file:
            return read_services_file(request.services_file)
        return None

    def _public_descriptor(self, service_dir: Path, strategy: str) -> ServiceDescriptor:
        """Descriptor for the public API service; every allow-listed source function must exist."""
        exported = ExportInspector(self.runner, strategy).describe(service_dir).exported_function_names
        missing = [source for _, source in self.config.public_api_exports if source not in exported]
        if missing:
            raise ExportDetectionError(
                f"{service_dir.name} does not export {', '.join(missing)} (required by PUBLIC_API_EXPORTS)",
                service=service_dir.name,
            )
        return ServiceDescriptor(service_dir.name, service_dir,
                                 tuple(name for name, _ in self.config.public_api_exports))

    def assemble(self, request: PrepareDeployRequest, deploy_dir: Path) -> PreparedDeployment:
        """Fill deploy_dir from the source tree and run validation gates."""
        project_id = request.project_id or self.config.require_project()
        run = DeploymentRun(project_id)
        log_stage(logger, run.state.value, project_id, deploy_dir=str(deploy_dir))

        try:
            project_root, services_dir = self._resolve_dirs(request)
            selection = self._selection(request)
            service_dirs = ServiceTreeReader(services_dir).list_services(selection)
            if not service_dirs:
                raise PreconditionError(f"No services to deploy in {services_dir}")

            source_index = services_dir / 'index.js'
            keep_source_index = (request.copy_mode == 'full' and selection is None
                                 and source_index.is_file())

            if request.public_api_only:
                descriptors = [self._public_descriptor(service_dirs[0], request.export_strategy)]
            elif keep_source_index:
                descriptors = [ServiceDescriptor(path.name, path) for path in service_dirs]
            else:
                inspector = ExportInspector(self.runner, request.export_strategy)
                descriptors = inspector.describe_all(service_dirs)

            manifest = DeploymentManifest(
                project_id=project_id,
                region=self.config.region,
                services=tuple(descriptors),
                env_overrides=production_env_overrides(project_id),
                runtime=self.config.runtime,
                public_api_only=request.public_api_only,
                memory=request.memory,
                timeout=request.timeout,
            )

            copier = FileCopier(CopyMode(request.copy_mode))
            copier.copy_services(manifest.services, deploy_dir / 'services')
            copier.copy_shared(project_root, services_dir, deploy_dir)

            synthesizer = ManifestSynthesizer(self.config.passthrough_env)
            if request.public_api_only:
                index_source = synthesizer.public_index_js(self.config.public_api_service,
                                                           self.config.public_api_exports)
                firebase_source = project_root / 'firebase-public-api-only.json'
                if not firebase_source.is_file():
                    firebase_source = project_root / 'firebase.json'
            else:
                if keep_source_index:
                    index_source = source_index.read_text(encoding='utf-8')
                    logger.info("Using the project's services/index.js")
                else:
                    index_source = synthesizer.index_js(manifest)
                firebase_source = project_root / 'firebase.json'
            synthesizer.write(manifest, deploy_dir, project_root, index_source, firebase_source)

            run.advance(DeploymentState.VALIDATING)
            log_stage(logger, run.state.value, project_id, services=manifest.service_names)
            report = validator.validate(deploy_dir)
            validator.enforce(report, self.confirmer)
        except ValidationBlocked:
            run.advance(DeploymentState.ABORTED)
            log_stage(logger, run.state.value, project_id)
            raise
        except Exception:
            if not run.finished:
                run.advance(DeploymentState.ABORTED)
            raise

        run.advance(DeploymentState.VALIDATED)
        log_stage(logger, run.state.value, project_id, services=len(manifest.services))
        return PreparedDeployment(deploy_dir, manifest, report, run)


REMOTE_ATTEMPTS = 3
REMOTE_RETRY_DELAY = 10.0


def prepare_and_deploy(preparation: PreparationService, deployer: Deployer, request: PrepareDeployRequest,
                       force: bool = False) -> DeploymentRun:
    """
    deploy-remote: prepare, then deploy with retries. The deployment directory is
    removed afterwards whatever the outcome.
    """
    with deployment_workspace(preparation.config.scratch_root, keep_on_success=False,
                              clock=preparation.clock) as deploy_dir:
        prepared = preparation.assemble(request, deploy_dir)
        return deployer.deploy_directory(DeployFromRequest(
            deploy_dir=deploy_dir,
            project_id=prepared.manifest.project_id,
            force=force,
            max_attempts=REMOTE_ATTEMPTS,
            retry_delay=REMOTE_RETRY_DELAY,
        ), report=prepared.report)
