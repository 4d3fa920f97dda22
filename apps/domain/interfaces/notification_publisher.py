from abc import ABC, abstractmethod
from typing import Dict


class NotificationPublisher(ABC):
    @abstractmethod
    def publish(self, event_type: str, payload: Dict) -> None:
        pass
