import base64
import json
from types import SimpleNamespace

import pytest
import requests

from firebase_devops.common.errors import PubSubError, ValidationBlocked
from firebase_devops.features.pubsub.service.pubsub_service import PubSubService
from firebase_devops.tests.conftest import approve, reject


class FakeEmulator:
    """In-memory stand-in for the Pub/Sub emulator REST API."""

    def __init__(self, topics=(), up=True):
        self.topics = set(topics)
        self.subscriptions = {}
        self.up = up
        self.requests = []

    def _response(self, status_code, payload=None):
        return SimpleNamespace(status_code=status_code, text=json.dumps(payload or {}),
                               json=lambda: payload or {})

    def get(self, url, timeout=None):
        if not self.up:
            raise requests.ConnectionError("refused")
        return self._response(200)

    def request(self, method, url, timeout=None, json=None):
        if not self.up:
            raise requests.ConnectionError("refused")
        self.requests.append((method, url, json))
        path = url.split('/v1/projects/demo-project/', 1)[1]
        if path == 'topics':
            return self._response(200, {'topics': [
                {'name': f"projects/demo-project/topics/{t}"} for t in sorted(self.topics)]})
        if path == 'subscriptions':
            return self._response(200, {'subscriptions': [
                {'name': f"projects/demo-project/subscriptions/{s}", 'topic': t}
                for s, t in sorted(self.subscriptions.items())]})
        kind, name = path.split('/', 1)
        if kind == 'topics' and name.endswith(':publish'):
            return self._response(200, {'messageIds': ['1']})
        if kind == 'topics':
            if method == 'GET':
                return self._response(200 if name in self.topics else 404)
            if method == 'PUT':
                if name in self.topics:
                    return self._response(409)
                self.topics.add(name)
                return self._response(200)
            if method == 'DELETE':
                if name not in self.topics:
                    return self._response(404)
                self.topics.discard(name)
                return self._response(200)
        if kind == 'subscriptions' and method == 'PUT':
            if name in self.subscriptions:
                return self._response(409)
            self.subscriptions[name] = json['topic']
            return self._response(200)
        return self._response(400)


@pytest.fixture
def required(config):
    return config.with_overrides(pubsub_topics=('orders-topic', 'events-topic'))


def make_service(config, emulator, confirmer=None):
    return PubSubService(config, session=emulator, confirmer=confirmer or approve())


def test_check_topics_reports_missing(required):
    result = make_service(required, FakeEmulator(topics={'orders-topic'})).check_topics()

    assert result == {'existing': ['orders-topic'], 'missing': ['events-topic']}


def test_create_topics_is_idempotent(required):
    emulator = FakeEmulator(topics={'orders-topic'})
    service = make_service(required, emulator)

    assert service.create_topics() == {'created': ['events-topic'], 'existing': ['orders-topic']}
    assert service.create_topics() == {'created': [], 'existing': ['orders-topic', 'events-topic']}


def test_ensure_topics_adds_emulator_subscriptions(required):
    emulator = FakeEmulator()

    result = make_service(required, emulator).ensure_topics()

    assert result['subscriptions'] == ['emulator-sub-orders-topic', 'emulator-sub-events-topic']
    assert emulator.subscriptions['emulator-sub-orders-topic'] == 'projects/demo-project/topics/orders-topic'
    sub_put = [r for r in emulator.requests if r[0] == 'PUT' and '/subscriptions/' in r[1]][0]
    assert sub_put[2]['ackDeadlineSeconds'] == 10


def test_publish_sends_base64_json(required):
    emulator = FakeEmulator(topics={'orders-topic'})

    result = make_service(required, emulator).publish_test_message()

    method, url, body = emulator.requests[-1]
    assert url.endswith('/topics/orders-topic:publish')
    payload = json.loads(base64.b64decode(body['messages'][0]['data']))
    assert payload['test'] is True
    assert result == {'topic': 'orders-topic', 'message_ids': ['1']}


def test_publish_to_missing_topic_fails(required):
    with pytest.raises(PubSubError):
        make_service(required, FakeEmulator()).publish_test_message('nope')


def test_delete_topic_is_gated(required):
    emulator = FakeEmulator(topics={'orders-topic'})

    with pytest.raises(ValidationBlocked):
        make_service(required, emulator, reject()).delete_topic('orders-topic')
    assert 'orders-topic' in emulator.topics

    make_service(required, emulator).delete_topic('orders-topic')
    assert 'orders-topic' not in emulator.topics


def test_unreachable_emulator(required):
    service = make_service(required, FakeEmulator(up=False))

    assert service.status() == {'available': False, 'url': 'http://localhost:8085'}
    with pytest.raises(PubSubError):
        service.check_topics()


def test_list_subscriptions_strips_project_prefix(required):
    emulator = FakeEmulator(topics={'orders-topic'})
    service = make_service(required, emulator)
    service.create_subscription('orders-topic')

    assert service.list_subscriptions() == [
        {'subscription': 'emulator-sub-orders-topic', 'topic': 'orders-topic'},
    ]
