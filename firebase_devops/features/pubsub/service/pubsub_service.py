"""Pub/Sub emulator topics and subscriptions over the emulator's REST API."""

from __future__ import annotations

import base64
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from firebase_devops.common.base.base_service import BaseService
from firebase_devops.common.errors import PubSubError, ValidationBlocked
from firebase_devops.config.env_config import ToolkitConfig
from firebase_devops.services.system.confirmation import Confirmer
from firebase_devops.services.system.logger_service import get_logger

logger = get_logger(__name__)

SUBSCRIPTION_PREFIX = 'emulator-sub-'
ACK_DEADLINE_SECONDS = 10


class PubSubService(BaseService):
    """Thin wrapper around the Pub/Sub emulator REST API."""

    def __init__(self, config: ToolkitConfig, session: Optional[requests.Session] = None,
                 confirmer: Optional[Confirmer] = None, timeout: int = 5) -> None:
        super().__init__(config)
        self.session = session or requests.Session()
        self.confirmer = confirmer or Confirmer()
        self.timeout = timeout

    @property
    def base_url(self) -> str:
        return f"http://{self.config.emulator_host}:{self.config.pubsub_port}"

    def _project_url(self) -> str:
        return f"{self.base_url}/v1/projects/{self.config.require_project()}"

    def topic_url(self, topic: str) -> str:
        return f"{self._project_url()}/topics/{topic}"

    def subscription_url(self, subscription: str) -> str:
        return f"{self._project_url()}/subscriptions/{subscription}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise PubSubError(f"Pub/Sub emulator is not reachable at {self.base_url}: {exc}")

    def is_available(self) -> bool:
        try:
            self.session.get(self.base_url, timeout=self.timeout)
            return True
        except requests.RequestException:
            return False

    def require_available(self) -> None:
        if not self.is_available():
            raise PubSubError(f"Pub/Sub emulator is not running on port {self.config.pubsub_port}")

    # Topics ---------------------------------------------------------------

    def topic_exists(self, topic: str) -> bool:
        return self._request('GET', self.topic_url(topic)).status_code == 200

    def create_topic(self, topic: str) -> bool:
        """Create a topic; returns False when it already existed."""
        if self.topic_exists(topic):
            logger.info(f"✅ Topic {topic} already exists. Skipping creation.")
            return False
        response = self._request('PUT', self.topic_url(topic), json={})
        if response.status_code == 409:
            return False
        if response.status_code != 200:
            raise PubSubError(f"Failed to create topic {topic}: HTTP {response.status_code} {response.text[:200]}",
                              status_code=response.status_code)
        logger.info(f"✅ Created topic: {topic}")
        return True

    def list_topics(self) -> List[str]:
        response = self._request('GET', f"{self._project_url()}/topics")
        if response.status_code != 200:
            raise PubSubError(f"Failed to list topics: HTTP {response.status_code}", status_code=response.status_code)
        prefix = f"projects/{self.config.project_id}/topics/"
        return sorted(item['name'].replace(prefix, '') for item in response.json().get('topics', []))

    def delete_topic(self, topic: str) -> None:
        decision = self.confirmer.confirm(f"Delete Pub/Sub topic '{topic}'?")
        if not decision.proceed:
            raise ValidationBlocked(f"Topic deletion cancelled ({decision.reason})")
        response = self._request('DELETE', self.topic_url(topic))
        if response.status_code == 404:
            raise PubSubError(f"Topic '{topic}' does not exist", status_code=404)
        if response.status_code != 200:
            raise PubSubError(f"Failed to delete topic {topic}: HTTP {response.status_code}",
                              status_code=response.status_code)
        logger.info(f"🗑️  Deleted topic: {topic}")

    # Subscriptions --------------------------------------------------------

    def create_subscription(self, topic: str, subscription: Optional[str] = None) -> bool:
        subscription = subscription or f"{SUBSCRIPTION_PREFIX}{topic}"
        body = {
            'topic': f"projects/{self.config.project_id}/topics/{topic}",
            'ackDeadlineSeconds': ACK_DEADLINE_SECONDS,
        }
        response = self._request('PUT', self.subscription_url(subscription), json=body)
        if response.status_code == 409:
            logger.info(f"Subscription {subscription} already exists")
            return False
        if response.status_code != 200:
            raise PubSubError(f"Failed to create subscription {subscription}: HTTP {response.status_code}",
                              status_code=response.status_code)
        logger.info(f"✅ Created subscription: {subscription}")
        return True

    def list_subscriptions(self) -> List[Dict[str, str]]:
        response = self._request('GET', f"{self._project_url()}/subscriptions")
        if response.status_code != 200:
            raise PubSubError(f"Failed to list subscriptions: HTTP {response.status_code}",
                              status_code=response.status_code)
        project_prefix = f"projects/{self.config.project_id}/"
        return [
            {
                'subscription': item['name'].replace(project_prefix + 'subscriptions/', ''),
                'topic': item.get('topic', '').replace(project_prefix + 'topics/', ''),
            }
            for item in response.json().get('subscriptions', [])
        ]

    # Bulk operations ------------------------------------------------------

    def check_topics(self) -> Dict[str, List[str]]:
        """Which required topics exist and which are missing."""
        self.require_available()
        existing, missing = [], []
        for topic in self.config.pubsub_topics:
            if self.topic_exists(topic):
                logger.info(f"✅ Topic exists: {topic}")
                existing.append(topic)
            else:
                logger.warning(f"⚠️  Topic missing: {topic}")
                missing.append(topic)
        logger.info(f"{len(existing)}/{len(self.config.pubsub_topics)} required topics exist")
        return {'existing': existing, 'missing': missing}

    def create_topics(self) -> Dict[str, List[str]]:
        self.require_available()
        created, existing = [], []
        for topic in self.config.pubsub_topics:
            (created if self.create_topic(topic) else existing).append(topic)
        logger.info(f"Created {len(created)} topics, {len(existing)} already existed")
        return {'created': created, 'existing': existing}

    def ensure_topics(self) -> Dict[str, List[str]]:
        """Create required topics plus one emulator-sub-<topic> subscription each."""
        result = self.create_topics()
        subscriptions = []
        for topic in self.config.pubsub_topics:
            self.create_subscription(topic)
            subscriptions.append(f"{SUBSCRIPTION_PREFIX}{topic}")
        result['subscriptions'] = subscriptions
        return result

    def publish_test_message(self, topic: Optional[str] = None) -> Dict[str, Any]:
        topic = topic or self.config.pubsub_topics[0]
        self.require_available()
        if not self.topic_exists(topic):
            raise PubSubError(f"Topic '{topic}' does not exist; create it first with: create-topic {topic}")
        message = {
            'test': True,
            'timestamp': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ'),
            'message': 'Test message from firebase-devops',
        }
        data = base64.b64encode(json.dumps(message).encode('utf-8')).decode('ascii')
        response = self._request('POST', f"{self.topic_url(topic)}:publish",
                                 json={'messages': [{'data': data}]})
        if response.status_code != 200:
            raise PubSubError(f"Failed to publish test message to {topic}: HTTP {response.status_code}",
                              status_code=response.status_code)
        message_ids = response.json().get('messageIds', [])
        logger.info(f"✅ Test message published successfully to {topic}", extra={"message_ids": message_ids})
        return {'topic': topic, 'message_ids': message_ids}

    def status(self) -> Dict[str, Any]:
        available = self.is_available()
        if available:
            logger.info(f"✅ Pub/Sub emulator is running on port {self.config.pubsub_port}")
        else:
            logger.warning(f"⚠️  Pub/Sub emulator is not running on port {self.config.pubsub_port}")
        status: Dict[str, Any] = {'available': available, 'url': self.base_url}
        if available and self.config.project_id:
            status['topics'] = self.list_topics()
        return status
