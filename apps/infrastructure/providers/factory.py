import threading
import logging
from typing import Dict, Optional
from django.conf import settings
from apps.domain.interfaces.file_storage import FileStorage
from apps.domain.interfaces.notification_publisher import NotificationPublisher
from .http_file_storage import HttpFileStorage
from .log_publisher import LogNotificationPublisher
from .webhook_publisher import WebhookNotificationPublisher

logger = logging.getLogger('apps')


class CollaboratorFactory:
    _instance = None
    _lock = threading.Lock()
    _cache: Dict[str, object] = {}

    def __new__(cls):
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(CollaboratorFactory, cls).__new__(cls)
        return cls._instance

    def _get_or_create(self, cache_key: str, builder):
        if cache_key not in self._cache:
            with self._lock:
                if cache_key not in self._cache:
                    self._cache[cache_key] = builder()
        return self._cache[cache_key]

    def get_file_storage(self, backend: Optional[str] = None) -> FileStorage:
        backend = backend or settings.FILE_STORAGE_BACKEND
        base_url = settings.FILE_STORAGE_BASE_URL
        return self._get_or_create(
            f'storage:{backend}:{base_url}',
            lambda: self._create_file_storage(backend),
        )

    def get_notification_publisher(self, backend: Optional[str] = None) -> NotificationPublisher:
        backend = backend or settings.NOTIFICATION_BACKEND
        return self._get_or_create(
            f'notifications:{backend}:{settings.NOTIFICATION_WEBHOOK_URL}',
            lambda: self._create_notification_publisher(backend),
        )

    def _create_file_storage(self, backend: str) -> FileStorage:
        if backend.lower() == 'http':
            return HttpFileStorage(
                settings.FILE_STORAGE_BASE_URL,
                settings.FILE_STORAGE_API_TOKEN,
                timeout=settings.COLLABORATOR_TIMEOUT,
            )
        raise ValueError(f'Unknown file storage backend: {backend}')

    def _create_notification_publisher(self, backend: str) -> NotificationPublisher:
        backend = backend.lower()
        if backend == 'log':
            return LogNotificationPublisher()
        if backend == 'webhook':
            if not settings.NOTIFICATION_WEBHOOK_URL:
                raise ValueError('NOTIFICATION_WEBHOOK_URL is required for the webhook backend')
            return WebhookNotificationPublisher(
                settings.NOTIFICATION_WEBHOOK_URL,
                settings.NOTIFICATION_API_TOKEN,
                timeout=settings.COLLABORATOR_TIMEOUT,
            )
        raise ValueError(f'Unknown notification backend: {backend}')

    def clear_cache(self):
        with self._lock:
            self._cache.clear()
