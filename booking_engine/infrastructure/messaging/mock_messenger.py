from __future__ import annotations

import logging

from booking_engine.application.ports.messaging import MessagingPort, SendReceipt


class MockMessenger(MessagingPort):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self._logger = logging.getLogger(__name__)

    def send(self, phone_number: str, message: str) -> SendReceipt:
        self.sent.append((phone_number, message))
        self._logger.info("Mock send", extra={"recipient": phone_number, "text_length": len(message)})
        return SendReceipt(id=f"mock_msg_{len(self.sent)}", status="sent")
