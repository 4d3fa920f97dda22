import hashlib
import time
import logging
from typing import Dict, Optional, Tuple, Type
from django.conf import settings
from django.db import transaction
from apps.domain.interfaces.file_storage import FileStorage
from apps.domain.interfaces.notification_publisher import NotificationPublisher
from apps.infrastructure.providers.factory import CollaboratorFactory
from apps.infrastructure.providers.http_file_storage import TransientFileStorageError
from apps.infrastructure.services.background import run_in_background

logger = logging.getLogger('apps')

PDF_CONTENT_TYPE = 'application/pdf'


def retry_operation(
    operation,
    retriable: Tuple[Type[Exception], ...] = (Exception,),
    max_retries: Optional[int] = None,
    delay: Optional[float] = None,
    **kwargs
):
    """Calls operation with exponential backoff; errors outside `retriable` fail at once."""
    max_retries = max_retries or settings.FINALIZER_MAX_RETRIES
    delay = settings.FINALIZER_RETRY_DELAY if delay is None else delay

    for attempt in range(max_retries):
        try:
            return operation(**kwargs)
        except retriable as e:
            if attempt == max_retries - 1:
                raise
            wait = delay * (2 ** attempt)
            logger.warning(f'Retry attempt {attempt + 1}/{max_retries} failed: {str(e)}; retrying in {wait:.1f}s')
            time.sleep(wait)


class SigningCollaboratorsFacade:
    """Single entry point to file storage and notifications for the signing core."""

    def __init__(
        self,
        collaborator_factory: Optional[CollaboratorFactory] = None,
        file_storage: Optional[FileStorage] = None,
        publisher: Optional[NotificationPublisher] = None,
    ):
        self.collaborator_factory = collaborator_factory or CollaboratorFactory()
        self._file_storage = file_storage
        self._publisher = publisher

    @property
    def file_storage(self) -> FileStorage:
        if self._file_storage is None:
            self._file_storage = self.collaborator_factory.get_file_storage()
        return self._file_storage

    @property
    def publisher(self) -> NotificationPublisher:
        if self._publisher is None:
            self._publisher = self.collaborator_factory.get_notification_publisher()
        return self._publisher

    def _retry_operation(self, operation, retriable=(TransientFileStorageError,), **kwargs):
        return retry_operation(operation, retriable=retriable, **kwargs)

    def get_download_url(self, file_version_id: str) -> str:
        return self.file_storage.get_download_url(file_version_id)

    def download_version(self, file_version_id: str) -> bytes:
        def download():
            url = self.file_storage.get_download_url(file_version_id)
            return self.file_storage.download_bytes(url, settings.SIGNING_MAX_PDF_BYTES)

        return self._retry_operation(download)

    def publish_version(self, content: bytes, metadata: Dict, content_type: str = PDF_CONTENT_TYPE) -> Dict:
        metadata = {
            **metadata,
            'sha256': hashlib.sha256(content).hexdigest(),
            'size': len(content),
            'content_type': content_type,
        }

        def publish():
            target = self.file_storage.presign_upload(content_type)
            self.file_storage.upload_bytes(target['upload_url'], content, content_type)
            return self.file_storage.complete_version(target['object_key'], metadata)

        return self._retry_operation(publish)

    def notify(self, event_type: str, payload: Dict) -> None:
        """Fire-and-forget: published after commit, off the request path."""
        def deliver():
            try:
                self.publisher.publish(event_type, payload)
            except Exception as e:
                logger.warning(f'Notification {event_type} could not be delivered: {str(e)}')

        transaction.on_commit(lambda: run_in_background(deliver, name=f'notify-{event_type}'))
