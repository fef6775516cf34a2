from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.common.errors import UsageError
from firebase_devops.features.data.service.preserve_service import PreserveDataService
from firebase_devops.features.data.service.schema_service import SchemaInferenceService


class DataController(BaseController):
    def __init__(self, preserve_service: PreserveDataService, schema_service: SchemaInferenceService):
        self.preserve_service = preserve_service
        self.schema_service = schema_service

    def preserve_data(self, args) -> int:
        def _preserve():
            action = args.action
            if action == 'export':
                return {'location': self.preserve_service.export()}
            if action == 'backup':
                return {'location': self.preserve_service.backup()}
            if action == 'import':
                if not args.path:
                    raise UsageError("preserve-data import requires a PATH")
                return self.preserve_service.import_data(args.path, start=args.start)
            if action == 'restore':
                return self.preserve_service.restore(args.path, start=args.start)
            return self.preserve_service.list_exports()
        return self.run(_preserve)

    def infer_schema(self, args) -> int:
        def _infer():
            collections = [name.strip() for name in (args.collections or '').split(',') if name.strip()]
            return self.schema_service.infer(
                collections=collections or None,
                sample=args.sample,
                recurse=args.recurse,
                depth=args.depth,
                out=args.out,
            )
        return self.run(_infer)
