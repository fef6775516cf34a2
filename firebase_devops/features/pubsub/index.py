from firebase_devops.common.base.base_controller import CommandContext
from firebase_devops.features.pubsub.controller.pubsub_controller import PubSubController
from firebase_devops.features.pubsub.service.pubsub_service import PubSubService


def build_controller(context: CommandContext) -> PubSubController:
    # Dependency Injection
    return PubSubController(PubSubService(context.config, confirmer=context.confirmer))


def _handler(method_name: str):
    return lambda context, args: getattr(build_controller(context), method_name)(args)


def register_commands(subparsers) -> None:
    for name, method, help_text in (
        ('pubsub-status', 'pubsub_status', 'Show Pub/Sub emulator status and topics'),
        ('check-topics', 'check_topics', 'Check that every required topic exists'),
        ('check-subs', 'check_subs', 'List subscriptions on the emulator'),
        ('create-topics', 'create_topics', 'Create every required topic'),
        ('ensure-topics', 'ensure_topics', 'Create required topics and their emulator subscriptions'),
    ):
        parser = subparsers.add_parser(name, help=help_text)
        parser.set_defaults(handler=_handler(method))

    parser = subparsers.add_parser('create-topic', help='Create one topic')
    parser.add_argument('topic')
    parser.set_defaults(handler=_handler('create_topic'))

    parser = subparsers.add_parser('delete-topic', help='Delete one topic')
    parser.add_argument('topic')
    parser.set_defaults(handler=_handler('delete_topic'))

    parser = subparsers.add_parser('test-pubsub', help='Publish a test message')
    parser.add_argument('topic', nargs='?', help='Topic (default: first required topic)')
    parser.set_defaults(handler=_handler('test_pubsub'))
