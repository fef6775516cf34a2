from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.features.deployment.service.deployer import Deployer
from firebase_devops.features.deployment.service.preparation_service import (
    PreparationService,
    clean_scratch_directories,
    prepare_and_deploy,
)
from firebase_devops.schemas.deployment_schemas import (
    DeployFromRequest,
    FunctionRequest,
    PrepareDeployRequest,
)
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)


class DeploymentController(BaseController):
    def __init__(self, preparation: PreparationService, deployer: Deployer):
        self.preparation = preparation
        self.deployer = deployer
        self.config = preparation.config

    def _prepare_request(self, args) -> PrepareDeployRequest:
        return PrepareDeployRequest(
            project_dir=getattr(args, 'project_dir', None),
            services_dir=getattr(args, 'source_services_dir', None),
            project_id=getattr(args, 'project', None),
            public_api_only=getattr(args, 'public_api_only', False),
            services_file=getattr(args, 'services_file', None),
            copy_mode=getattr(args, 'copy_mode', 'full'),
            export_strategy=getattr(args, 'export_strategy', 'auto'),
            memory=getattr(args, 'memory', None),
            timeout=getattr(args, 'timeout', None),
        )

    def prepare_deploy(self, args) -> int:
        """Only the directory path goes to stdout so callers can capture it."""
        def _prepare():
            prepared = self.preparation.prepare(self._prepare_request(args))
            logger.info(f"Deploy it with: deploy-from --dir {prepared.deploy_dir} "
                        f"--project {prepared.manifest.project_id}")
            return str(prepared.deploy_dir)
        return self.run(_prepare)

    def deploy_from(self, args) -> int:
        def _deploy():
            request = DeployFromRequest(
                deploy_dir=args.dir,
                project_id=args.project or self.config.require_project(),
                force=args.force,
                max_attempts=args.attempts,
            )
            run = self.deployer.deploy_directory(request)
            return {'project_id': run.project_id, 'state': run.state.value}
        return self.run(_deploy)

    def deploy_remote(self, args) -> int:
        def _deploy():
            run = prepare_and_deploy(self.preparation, self.deployer,
                                     self._prepare_request(args), force=args.force)
            return {'project_id': run.project_id, 'state': run.state.value}
        return self.run(_deploy)

    def _function_request(self, args) -> FunctionRequest:
        return FunctionRequest(
            function_name=args.function,
            project_id=args.project or self.config.require_project(),
            region=getattr(args, 'region', None) or self.config.region,
        )

    def deploy_function(self, args) -> int:
        def _deploy():
            request = self._function_request(args)
            self.deployer.deploy_function(request)
            return {'function': request.function_name, 'deployed': True}
        return self.run(_deploy)

    def remove_function(self, args) -> int:
        def _remove():
            request = self._function_request(args)
            self.deployer.remove_function(request)
            return {'function': request.function_name, 'removed': True}
        return self.run(_remove)

    def clean_deploy(self, args) -> int:
        def _clean():
            removed = clean_scratch_directories(self.config.scratch_root)
            return {'removed': [str(path) for path in removed]}
        return self.run(_clean)
