"""
Deployer: pushes a prepared deployment directory with the Firebase CLI.
"""
import shutil
import time
from pathlib import Path
from typing import Callable, Optional

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import PreconditionError, ValidationBlocked, VendorCommandError
from firebase_devops.config.env_config import ToolkitConfig, production_environment
from firebase_devops.features.deployment.domain.models import (
    DeploymentRun,
    DeploymentState,
    ValidationReport,
    format_size,
)
from firebase_devops.features.deployment.service import validator
from firebase_devops.schemas.deployment_schemas import DeployFromRequest, FunctionRequest
from firebase_devops.services.system.command_runner import CommandResult, CommandRunner
from firebase_devops.services.system.confirmation import Confirmer
from firebase_devops.services.system.logger_service import get_logger, log_stage

logger = get_logger(__name__)

MINIMAL_DEPENDENCIES = ('firebase-functions', 'firebase-admin')


class Deployer(BaseService):
    def __init__(self, config: ToolkitConfig, confirmer: Confirmer,
                 runner: Optional[CommandRunner] = None,
                 sleep: Callable[[float], None] = time.sleep):
        super().__init__(config, runner)
        self.confirmer = confirmer
        self.sleep = sleep

    def check_preconditions(self, deploy_dir: Optional[Path] = None) -> None:
        """Deployment directory, firebase and npm on PATH, and a logged-in Firebase session."""
        if deploy_dir is not None and not Path(deploy_dir).is_dir():
            raise PreconditionError(f"Deployment directory not found: {deploy_dir}")
        self.runner.require('firebase')
        self.runner.require('npm')
        self.check_authenticated()

    def check_authenticated(self) -> None:
        result = self.runner.run(['firebase', 'projects:list'], env=production_environment())
        if not result.ok:
            raise PreconditionError("Firebase CLI is not authenticated", hint="Run: firebase login")
        logger.debug("Firebase session authenticated")

    def deploy_directory(self, request: DeployFromRequest,
                         report: Optional[ValidationReport] = None) -> DeploymentRun:
        """
        deploy-from: clean, re-validate, confirm, install minimal dependencies and deploy.

        A report whose gates were already enforced for this directory (deploy-remote)
        skips re-validation so the operator is not asked the same questions twice.

        Raises:
            ValidationBlocked: validation gate or deploy confirmation rejected
            VendorCommandError: firebase deploy failed on every attempt
        """
        deploy_dir = Path(request.deploy_dir).resolve()
        run = DeploymentRun(request.project_id)
        log_stage(logger, run.state.value, request.project_id, deploy_dir=str(deploy_dir))
        self.check_preconditions(deploy_dir)

        validator.clean_deployment_directory(deploy_dir)
        run.advance(DeploymentState.VALIDATING)
        log_stage(logger, run.state.value, request.project_id)
        try:
            if report is None:
                report = validator.enforce(validator.validate(deploy_dir), self.confirmer)
            self._print_summary(deploy_dir, request)
            validator.checklist(deploy_dir, request.project_id, report,
                                firebase_available=self.runner.which('firebase') is not None)
            decision = self.confirmer.confirm(
                f"About to deploy to production project '{request.project_id}'. Continue?")
            if not decision.proceed:
                raise ValidationBlocked(f"Deployment cancelled ({decision.reason})")
        except ValidationBlocked:
            run.advance(DeploymentState.ABORTED)
            log_stage(logger, run.state.value, request.project_id)
            raise
        run.advance(DeploymentState.VALIDATED)

        run.advance(DeploymentState.DEPLOYING)
        log_stage(logger, run.state.value, request.project_id, force=request.force)
        try:
            self._install_minimal_dependencies(deploy_dir)
            result = self._deploy_with_retries(deploy_dir, request)
        except Exception:
            run.advance(DeploymentState.FAILED)
            log_stage(logger, run.state.value, request.project_id)
            raise
        finally:
            services_modules = deploy_dir / 'services' / 'node_modules'
            if services_modules.exists():
                shutil.rmtree(services_modules, ignore_errors=True)
                logger.debug("Removed temporary dependencies", extra={"path": str(services_modules)})

        run.advance(DeploymentState.DEPLOYED)
        log_stage(logger, run.state.value, request.project_id, attempts=result)
        logger.info("🎉 Deployment successful!", extra={"project_id": request.project_id})
        self.list_deployed_functions(request.project_id)
        return run

    def _print_summary(self, deploy_dir: Path, request: DeployFromRequest) -> None:
        stats = validator.analyze(deploy_dir)
        logger.info("📊 Deployment summary", extra={
            "project_id": request.project_id,
            "service_count": stats['service_count'],
            "file_count": stats['file_count'],
            "total_size": format_size(stats['total_size_bytes']),
        })
        for service in stats['services']:
            logger.info(f"   - {service}")

    def _install_minimal_dependencies(self, deploy_dir: Path) -> None:
        logger.info("📥 Installing minimal Firebase dependencies for CLI analysis...")
        self.runner.run(
            ['npm', 'install', *MINIMAL_DEPENDENCIES,
             '--production', '--no-save', '--no-package-lock', '--silent'],
            cwd=deploy_dir / 'services',
            check=True,
        )

    def _deploy_with_retries(self, deploy_dir: Path, request: DeployFromRequest) -> int:
        """Run firebase deploy up to max_attempts times; return the attempt that succeeded."""
        argv = ['firebase', 'deploy', '--only', 'functions', '--project', request.project_id]
        if request.force:
            argv.append('--force')

        result: Optional[CommandResult] = None
        for attempt in range(1, request.max_attempts + 1):
            logger.info(f"🚀 Deploying to Firebase (attempt {attempt}/{request.max_attempts})...")
            result = self.runner.run(argv, cwd=deploy_dir, env=production_environment(), capture=False)
            if result.ok:
                return attempt
            logger.warning(f"⚠️  firebase deploy exited with code {result.returncode}",
                           extra={"attempt": attempt, "returncode": result.returncode})
            if attempt < request.max_attempts:
                logger.info(f"Retrying in {request.retry_delay:.0f}s...")
                self.sleep(request.retry_delay)

        raise VendorCommandError(
            f"firebase deploy failed after {request.max_attempts} attempt(s)",
            result.returncode if result else 1,
            argv,
        )

    def list_deployed_functions(self, project_id: str) -> Optional[CommandResult]:
        if not self.runner.which('gcloud'):
            logger.info("gcloud not installed; skipping deployed function listing")
            return None
        logger.info("📋 Deployed functions:")
        return self.runner.run(
            ['gcloud', 'functions', 'list', f"--project={project_id}",
             '--format=table(name,state,environment)'],
            capture=False,
        )

    def deploy_function(self, request: FunctionRequest) -> CommandResult:
        """deploy-function: redeploy a single function with emulator settings cleared."""
        self.runner.require('firebase')
        logger.info(f"🚀 Deploying function {request.function_name} to {request.project_id}")
        result = self.runner.run(
            ['firebase', 'deploy', '--only', f"functions:{request.function_name}",
             '--project', request.project_id],
            cwd=self.config.project_root,
            env=production_environment(),
            capture=False,
            check=True,
        )
        logger.info(f"✅ Function {request.function_name} deployed")
        return result

    def remove_function(self, request: FunctionRequest) -> CommandResult:
        """remove-function: delete a deployed function after confirmation."""
        self.runner.require('firebase')
        decision = self.confirmer.confirm(
            f"Delete function '{request.function_name}' from project '{request.project_id}'?")
        if not decision.proceed:
            raise ValidationBlocked(f"Function removal cancelled ({decision.reason})")
        argv = ['firebase', 'functions:delete', request.function_name, '--project', request.project_id]
        if request.region:
            argv += ['--region', request.region]
        argv.append('--force')
        result = self.runner.run(argv, env=production_environment(), capture=False, check=True)
        logger.info(f"🗑️  Function {request.function_name} removed")
        return result
