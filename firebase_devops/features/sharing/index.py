from firebase_devops.common.base.base_controller import CommandContext
from firebase_devops.features.sharing.controller.sharing_controller import SharingController
from firebase_devops.features.sharing.service.tunnel_service import TunnelService


def build_controller(context: CommandContext) -> SharingController:
    # Dependency Injection
    return SharingController(TunnelService(context.config, context.runner))


def register_commands(subparsers) -> None:
    parser = subparsers.add_parser('share-emulators', help='Share local emulators through ngrok tunnels')
    parser.add_argument('action', choices=['start', 'stop', 'status', 'urls'])
    parser.add_argument('--emulators', help='Comma-separated subset, e.g. ui,functions')
    parser.set_defaults(handler=lambda context, args: build_controller(context).share_emulators(args))
