from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.features.sharing.service.tunnel_service import TunnelService


class SharingController(BaseController):
    def __init__(self, service: TunnelService):
        self.service = service

    def share_emulators(self, args) -> int:
        def _share():
            if args.action == 'start':
                emulators = [name.strip() for name in (args.emulators or '').split(',') if name.strip()]
                return self.service.start(emulators or None)
            if args.action == 'stop':
                return {'stopped': self.service.stop()}
            if args.action == 'urls':
                return {str(port): url for port, url in self.service.saved_urls().items()}
            return self.service.status()
        return self.run(_share)
