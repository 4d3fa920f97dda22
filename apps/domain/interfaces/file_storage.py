from abc import ABC, abstractmethod
from typing import Dict


class FileStorage(ABC):
    @abstractmethod
    def presign_upload(self, content_type: str) -> Dict:
        """Returns {'upload_url', 'object_key'}"""
        pass

    @abstractmethod
    def complete_version(self, object_key: str, metadata: Dict) -> Dict:
        """Registers an uploaded object as a new file version and returns it"""
        pass

    @abstractmethod
    def get_download_url(self, file_version_id: str) -> str:
        pass

    @abstractmethod
    def upload_bytes(self, upload_url: str, content: bytes, content_type: str) -> None:
        pass

    @abstractmethod
    def download_bytes(self, url: str, max_bytes: int) -> bytes:
        pass
