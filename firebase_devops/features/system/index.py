from firebase_devops.common.base.base_controller import CommandContext
from firebase_devops.features.system.controller.resource_controller import ResourceController
from firebase_devops.features.system.service.resource_monitor import (
    MONITOR_INTERVAL_SECONDS,
    ResourceMonitorService,
)


def build_controller(context: CommandContext) -> ResourceController:
    # Dependency Injection
    return ResourceController(ResourceMonitorService(context.config))


def _handler(method_name: str):
    return lambda context, args: getattr(build_controller(context), method_name)(args)


def register_commands(subparsers) -> None:
    parser = subparsers.add_parser('check-resources', help='Check emulator memory, CPU and process limits')
    parser.set_defaults(handler=_handler('check_resources'))

    parser = subparsers.add_parser('cleanup-resources', help='Kill excess Firebase node processes')
    parser.set_defaults(handler=_handler('cleanup_resources'))

    parser = subparsers.add_parser('monitor-resources', help='Check resources periodically')
    parser.add_argument('--interval', type=float, default=MONITOR_INTERVAL_SECONDS, help='Seconds between checks')
    parser.add_argument('--iterations', type=int, help='Stop after N checks (default: run until interrupted)')
    parser.set_defaults(handler=_handler('monitor_resources'))
