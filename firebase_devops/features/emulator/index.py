from firebase_devops.common.base.base_controller import CommandContext
from firebase_devops.features.emulator.controller.emulator_controller import EmulatorController
from firebase_devops.features.emulator.service.emulator_service import EmulatorService


def build_controller(context: CommandContext) -> EmulatorController:
    # Dependency Injection
    return EmulatorController(EmulatorService(context.config, context.runner))


def _handler(method_name: str):
    return lambda context, args: getattr(build_controller(context), method_name)(args)


def _add_start_arguments(parser) -> None:
    parser.add_argument('--services', help='Comma-separated function filter, e.g. a,b')
    parser.add_argument('--concurrency', type=int, help='FUNCTION_CONCURRENCY for the emulated functions')
    parser.add_argument('--max-instances', type=int, help='FUNCTION_MAX_INSTANCES for the emulated functions')


def register_commands(subparsers) -> None:
    for name, method, help_text in (
        ('start-local', 'start_local', 'Start the local emulator suite'),
        ('start-local-min', 'start_local_min', 'Start the emulators with the minimal function set'),
        ('restart-local', 'restart_local', 'Clean and start the emulator suite again'),
    ):
        parser = subparsers.add_parser(name, help=help_text)
        _add_start_arguments(parser)
        parser.set_defaults(handler=_handler(method))

    for name, method, help_text in (
        ('stop-local', 'stop_local', 'Stop the local emulator suite'),
        ('status-local', 'status_local', 'Show emulator process and port status'),
        ('clean-local', 'clean_local', 'Stop emulators and free their ports'),
        ('deploy-local', 'deploy_local', 'Install service dependencies and health-check them on the emulator'),
    ):
        parser = subparsers.add_parser(name, help=help_text)
        parser.set_defaults(handler=_handler(method))
