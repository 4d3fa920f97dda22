import logging
from typing import Dict
from apps.domain.interfaces.notification_publisher import NotificationPublisher

logger = logging.getLogger('apps')


class LogNotificationPublisher(NotificationPublisher):
    def publish(self, event_type: str, payload: Dict) -> None:
        recipient_id = payload.get('recipient_id')
        suffix = f' recipient {recipient_id}' if recipient_id else ''
        logger.info(f'Notification {event_type}: envelope {payload.get("envelope_id")}{suffix}')
