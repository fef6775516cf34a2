from firebase_devops.common.base.base_controller import BaseController
from firebase_devops.common.errors import PubSubError
from firebase_devops.features.pubsub.service.pubsub_service import PubSubService


class PubSubController(BaseController):
    def __init__(self, service: PubSubService):
        self.service = service

    def pubsub_status(self, args) -> int:
        return self.run(self.service.status)

    def check_topics(self, args) -> int:
        """Exit 1 when any required topic is missing."""
        def _check():
            result = self.service.check_topics()
            if result['missing']:
                raise PubSubError(f"Missing topics: {', '.join(result['missing'])}; run create-topics")
            return result
        return self.run(_check)

    def check_subs(self, args) -> int:
        def _check():
            self.service.require_available()
            return self.service.list_subscriptions()
        return self.run(_check)

    def create_topic(self, args) -> int:
        def _create():
            self.service.require_available()
            created = self.service.create_topic(args.topic)
            return {'topic': args.topic, 'created': created}
        return self.run(_create)

    def create_topics(self, args) -> int:
        return self.run(self.service.create_topics)

    def ensure_topics(self, args) -> int:
        return self.run(self.service.ensure_topics)

    def delete_topic(self, args) -> int:
        def _delete():
            self.service.require_available()
            self.service.delete_topic(args.topic)
            return {'topic': args.topic, 'deleted': True}
        return self.run(_delete)

    def test_pubsub(self, args) -> int:
        return self.run(lambda: self.service.publish_test_message(args.topic))
