from .http_file_storage import HttpFileStorage, FileStorageError, TransientFileStorageError
from .log_publisher import LogNotificationPublisher
from .webhook_publisher import WebhookNotificationPublisher
from .factory import CollaboratorFactory

__all__ = [
    'HttpFileStorage',
    'FileStorageError',
    'TransientFileStorageError',
    'LogNotificationPublisher',
    'WebhookNotificationPublisher',
    'CollaboratorFactory',
]
