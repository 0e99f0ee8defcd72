from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class SendReceipt:
    id: str
    status: str


class MessagingPort(ABC):
    channel: str = "whatsapp"

    @abstractmethod
    def send(self, phone_number: str, message: str) -> SendReceipt:
        """Deliver a text message. Raises CollaboratorError on failure."""
        raise NotImplementedError
