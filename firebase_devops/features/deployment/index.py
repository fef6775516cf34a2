from firebase_devops.common.base.base_controller import CommandContext
from firebase_devops.features.deployment.controller.deployment_controller import DeploymentController
from firebase_devops.features.deployment.service.deployer import Deployer
from firebase_devops.features.deployment.service.preparation_service import PreparationService


def build_controller(context: CommandContext) -> DeploymentController:
    # Dependency Injection
    preparation = PreparationService(context.config, context.confirmer, context.runner)
    deployer = Deployer(context.config, context.confirmer, context.runner)
    return DeploymentController(preparation, deployer)


def _handler(method_name: str):
    return lambda context, args: getattr(build_controller(context), method_name)(args)


def _add_prepare_arguments(parser) -> None:
    parser.add_argument('--project-dir', dest='project_dir', help='Source project root')
    parser.add_argument('--services-dir', dest='source_services_dir', help='Services directory to assemble from')
    parser.add_argument('--project', help='Target Firebase project id')
    parser.add_argument('--public-api-only', action='store_true', help='Deploy only the public API service')
    parser.add_argument('--services-file', help='File listing the services to include, one per line')
    parser.add_argument('--copy-mode', choices=['full', 'allowlist'], default='full')
    parser.add_argument('--export-strategy', choices=['auto', 'regex', 'introspect'], default='auto')
    parser.add_argument('--memory', help='Functions memory, e.g. 512MB')
    parser.add_argument('--timeout', help='Functions timeout, e.g. 300s')


def register_commands(subparsers) -> None:
    # Assembly
    parser = subparsers.add_parser('prepare-deploy', help='Assemble and validate a deployment directory')
    _add_prepare_arguments(parser)
    parser.set_defaults(handler=_handler('prepare_deploy'))

    parser = subparsers.add_parser('deploy-from', help='Deploy a prepared deployment directory')
    parser.add_argument('--dir', required=True, help='Prepared deployment directory')
    parser.add_argument('--project', help='Target Firebase project id')
    parser.add_argument('--force', action='store_true', help='Pass --force to firebase deploy')
    parser.add_argument('--attempts', type=int, default=1, help='firebase deploy attempts')
    parser.set_defaults(handler=_handler('deploy_from'))

    parser = subparsers.add_parser('deploy-remote', help='Prepare and deploy in one step, with retries')
    _add_prepare_arguments(parser)
    parser.add_argument('--force', action='store_true', help='Pass --force to firebase deploy')
    parser.set_defaults(handler=_handler('deploy_remote'))

    # Single functions
    for name, method, help_text in (
        ('deploy-function', 'deploy_function', 'Deploy one function'),
        ('remove-function', 'remove_function', 'Delete one deployed function'),
    ):
        parser = subparsers.add_parser(name, help=help_text)
        parser.add_argument('--function', required=True, help='Function name')
        parser.add_argument('--project', help='Target Firebase project id')
        parser.add_argument('--region', help='Functions region')
        parser.set_defaults(handler=_handler(method))

    # Housekeeping
    parser = subparsers.add_parser('clean-deploy', help='Remove leftover firebase-deployment-* directories')
    parser.set_defaults(handler=_handler('clean_deploy'))
