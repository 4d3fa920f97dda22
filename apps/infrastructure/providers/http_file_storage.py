import requests
import logging
from typing import Dict, Optional
from apps.domain.interfaces.file_storage import FileStorage

logger = logging.getLogger('apps')

DOWNLOAD_CHUNK_SIZE = 64 * 1024


class FileStorageError(Exception):
    """Raised when the file storage service cannot complete a request"""
    pass


class TransientFileStorageError(FileStorageError):
    """Raised for failures worth retrying: timeouts, dropped connections, 5xx"""
    pass


TRANSIENT_REQUEST_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def storage_error(message: str, error: requests.exceptions.RequestException) -> FileStorageError:
    if isinstance(error, requests.exceptions.HTTPError):
        status_code = error.response.status_code if error.response is not None else None
        if status_code is not None and status_code < 500:
            return FileStorageError(f'{message}: {status_code}')
        return TransientFileStorageError(f'{message}: {status_code or "unknown"}')
    if isinstance(error, TRANSIENT_REQUEST_ERRORS):
        return TransientFileStorageError(f'{message}: {str(error)}')
    return FileStorageError(f'{message}: {str(error)}')


class HttpFileStorage(FileStorage):
    def __init__(self, base_url: str, api_token: Optional[str] = None, timeout: int = 30):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.headers = {'Content-Type': 'application/json'}
        if api_token:
            self.headers['Authorization'] = f'Bearer {api_token}'

    def _post(self, path: str, payload: Dict) -> Dict:
        url = f'{self.base_url}{path}'
        try:
            response = requests.post(url, json=payload, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f'File storage request to {path} failed: {str(e)}')
            raise storage_error('File storage request failed', e) from e

    def presign_upload(self, content_type: str) -> Dict:
        data = self._post('/api/files/presign-upload', {'content_type': content_type})
        return {
            'upload_url': data['upload_url'],
            'object_key': data['object_key'],
        }

    def complete_version(self, object_key: str, metadata: Dict) -> Dict:
        return self._post('/api/files/versions', {'object_key': object_key, 'metadata': metadata})

    def get_download_url(self, file_version_id: str) -> str:
        url = f'{self.base_url}/api/files/versions/{file_version_id}/download-url'
        try:
            response = requests.get(url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
            return response.json()['url']
        except requests.exceptions.RequestException as e:
            logger.error(f'Error getting download url for file version {file_version_id}: {str(e)}')
            raise storage_error('Failed to get download url', e) from e

    def upload_bytes(self, upload_url: str, content: bytes, content_type: str) -> None:
        try:
            response = requests.put(
                upload_url,
                data=content,
                headers={'Content-Type': content_type},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f'Error uploading object to presigned url: {str(e)}')
            raise storage_error('Failed to upload object', e) from e

    def download_bytes(self, url: str, max_bytes: int) -> bytes:
        too_large = FileStorageError(f'Object exceeds maximum size of {max_bytes} bytes')
        try:
            response = requests.get(url, timeout=self.timeout, stream=True)
            try:
                response.raise_for_status()
                declared = response.headers.get('Content-Length')
                if str(declared).isdigit() and int(declared) > max_bytes:
                    raise too_large

                content = bytearray()
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                    content.extend(chunk)
                    if len(content) > max_bytes:
                        raise too_large
                return bytes(content)
            finally:
                response.close()
        except requests.exceptions.RequestException as e:
            logger.error(f'Error downloading object: {str(e)}')
            raise storage_error('Failed to download object', e) from e
