from firebase_devops.common.base.base_controller import CommandContext
from firebase_devops.features.data.controller.data_controller import DataController
from firebase_devops.features.data.service.preserve_service import PreserveDataService
from firebase_devops.features.data.service.schema_service import DEFAULT_SAMPLE_SIZE, SchemaInferenceService


def build_controller(context: CommandContext) -> DataController:
    # Dependency Injection
    return DataController(
        PreserveDataService(context.config, context.runner),
        SchemaInferenceService(context.config),
    )


def _handler(method_name: str):
    return lambda context, args: getattr(build_controller(context), method_name)(args)


def register_commands(subparsers) -> None:
    parser = subparsers.add_parser('preserve-data', help='Export, import, back up or restore Firestore data')
    parser.add_argument('action', choices=['export', 'import', 'backup', 'restore', 'list'])
    parser.add_argument('path', nargs='?', help='Export directory or gs:// prefix for import/restore')
    parser.add_argument('--start', action='store_true', help='Start the emulator with the imported data')
    parser.set_defaults(handler=_handler('preserve_data'))

    parser = subparsers.add_parser('infer-schema', help='Infer collection schemas by sampling documents')
    parser.add_argument('--sample', type=int, default=DEFAULT_SAMPLE_SIZE, help='Documents per collection')
    parser.add_argument('--collections', help='Comma-separated collection ids (default: all root collections)')
    parser.add_argument('--recurse', action='store_true', help='Follow subcollections')
    parser.add_argument('--depth', type=int, default=1, help='Subcollection depth when recursing')
    parser.add_argument('--out', help='Write the schema JSON to this file')
    parser.set_defaults(handler=_handler('infer_schema'))
