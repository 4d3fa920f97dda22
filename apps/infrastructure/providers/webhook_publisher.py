import json
import requests
import logging
from typing import Dict, Optional
from django.core.serializers.json import DjangoJSONEncoder
from apps.domain.interfaces.notification_publisher import NotificationPublisher

logger = logging.getLogger('apps')


class WebhookNotificationPublisher(NotificationPublisher):
    def __init__(self, webhook_url: str, api_token: Optional[str] = None, timeout: int = 30):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.headers = {'Content-Type': 'application/json'}
        if api_token:
            self.headers['Authorization'] = f'Bearer {api_token}'

    def publish(self, event_type: str, payload: Dict) -> None:
        body = json.dumps({'event_type': event_type, 'payload': payload}, cls=DjangoJSONEncoder)
        response = requests.post(self.webhook_url, data=body, headers=self.headers, timeout=self.timeout)
        response.raise_for_status()
        logger.debug(f'Notification {event_type} delivered to webhook')
