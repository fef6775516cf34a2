from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.features.emulator.service.emulator_service import EmulatorService
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)


class EmulatorController(BaseController):
    def __init__(self, service: EmulatorService):
        self.service = service

    def _apply_overrides(self, args) -> None:
        self.service.config = self.service.config.with_overrides(
            concurrency=getattr(args, 'concurrency', None),
            max_instances=getattr(args, 'max_instances', None),
        )

    def start_local(self, args) -> int:
        def _start():
            self._apply_overrides(args)
            pid = self.service.start(args.services)
            return {'pid': pid, 'log_file': str(self.service.log_path)}
        return self.run(_start)

    def start_local_min(self, args) -> int:
        def _start():
            self._apply_overrides(args)
            functions_filter = args.services or self.service.config.min_functions_filter
            logger.info(f"Starting minimal emulator set: {functions_filter}")
            pid = self.service.start(functions_filter)
            return {'pid': pid, 'functions': functions_filter}
        return self.run(_start)

    def stop_local(self, args) -> int:
        return self.run(self.service.stop)

    def status_local(self, args) -> int:
        return self.run(self.service.status)

    def restart_local(self, args) -> int:
        def _restart():
            self._apply_overrides(args)
            return {'pid': self.service.restart(args.services)}
        return self.run(_restart)

    def clean_local(self, args) -> int:
        return self.run(self.service.clean)

    def deploy_local(self, args) -> int:
        def _deploy():
            result = self.service.deploy_local()
            unhealthy = [name for name, item in result['health'].items() if not item['healthy']]
            if unhealthy:
                logger.warning(f"⚠️  Unhealthy services: {', '.join(unhealthy)}")
            return result
        return self.run(_deploy)
