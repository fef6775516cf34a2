"""
Command line entry point for the Firebase DevOps Toolkit.
Each feature registers its sub-commands from its index module.
"""
import argparse
import logging
import os
import sys
from typing import List, Optional

# Initialize logging service FIRST (before other imports)
from firebase_devops.services.system.logger_service import LoggerService, get_logger
logger = get_logger(__name__)

from firebase_devops.common.base.base_controller import BaseController, CommandContext
from firebase_devops.config.env_config import get_toolkit_config
from firebase_devops.services.system.command_runner import CommandRunner
from firebase_devops.services.system.confirmation import ConfirmationPolicy, Confirmer

# Import all command groups
from firebase_devops.features.deployment.index import register_commands as register_deployment
from firebase_devops.features.emulator.index import register_commands as register_emulator
from firebase_devops.features.pubsub.index import register_commands as register_pubsub
from firebase_devops.features.system.index import register_commands as register_system
from firebase_devops.features.data.index import register_commands as register_data
from firebase_devops.features.sharing.index import register_commands as register_sharing

COMMAND_GROUPS = (
    register_emulator,
    register_deployment,
    register_pubsub,
    register_system,
    register_data,
    register_sharing,
)


class ToolkitArgumentParser(argparse.ArgumentParser):
    """Argument errors print usage and exit 1 like every other usage failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = ToolkitArgumentParser(
        prog='firebase-devops',
        description='Firebase DevOps Toolkit: local emulators, deployment directories and Pub/Sub tooling',
    )
    parser.add_argument('--env-file', help='Path to the .env file (default: <project root>/.env)')
    parser.add_argument('--project-root', help='Project root (default: PROJECT_ROOT or the current directory)')
    parser.add_argument('--services-dir', help='Services directory (default: <project root>/services)')
    confirm = parser.add_mutually_exclusive_group()
    confirm.add_argument('--yes', '-y', action='store_true', help='Approve every confirmation gate')
    confirm.add_argument('--no', action='store_true', help='Reject every confirmation gate')
    parser.add_argument('--verbose', '-v', action='store_true', help='Show debug output on the console')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND', parser_class=ToolkitArgumentParser)
    subparsers.required = True
    for register in COMMAND_GROUPS:
        register(subparsers)
    return parser


def build_context(args: argparse.Namespace, environ: Optional[dict] = None) -> CommandContext:
    environ = dict(os.environ if environ is None else environ)
    if args.project_root:
        environ['PROJECT_ROOT'] = os.path.abspath(args.project_root)
    config = get_toolkit_config(args.env_file, environ)
    config = config.with_overrides(services_dir=args.services_dir)

    policy = ConfirmationPolicy(config.confirm_policy)
    if args.yes:
        policy = ConfirmationPolicy.AUTO_APPROVE
    elif args.no:
        policy = ConfirmationPolicy.AUTO_REJECT
    return CommandContext(config=config, confirmer=Confirmer(policy), runner=CommandRunner(environ))


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        LoggerService().set_console_level(logging.DEBUG)

    # Configuration errors surface through the same exit-code mapping as commands
    context_holder = {}

    def _load():
        context_holder['context'] = build_context(args)

    exit_code = BaseController().run(_load)
    if exit_code != 0:
        return exit_code

    logger.debug("Running command", extra={"command": args.command})
    return args.handler(context_holder['context'], args)


if __name__ == '__main__':
    sys.exit(main())
