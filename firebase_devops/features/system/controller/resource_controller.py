from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.features.system.service.resource_monitor import ResourceMonitorService


class ResourceController(BaseController):
    def __init__(self, service: ResourceMonitorService):
        self.service = service

    def check_resources(self, args) -> int:
        """Exit 1 when a limit is exceeded."""
        outcome = {}

        def _check():
            outcome.update(self.service.check())
            return outcome

        exit_code = self.run(_check)
        if exit_code == 0 and not outcome.get('ok', True):
            return 1
        return exit_code

    def cleanup_resources(self, args) -> int:
        return self.run(lambda: {'killed': self.service.cleanup()})

    def monitor_resources(self, args) -> int:
        return self.run(lambda: {'checks': self.service.monitor(args.interval, args.iterations)})
