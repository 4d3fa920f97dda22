from .file_storage import FileStorage
from .notification_publisher import NotificationPublisher

__all__ = ['FileStorage', 'NotificationPublisher']
