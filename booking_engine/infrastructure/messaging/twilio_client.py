from __future__ import annotations

import logging

import httpx

from booking_engine.application.exceptions import CollaboratorError
from booking_engine.application.ports.messaging import MessagingPort, SendReceipt


class TwilioWhatsAppClient(MessagingPort):
    channel = "whatsapp"

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: str = "https://api.twilio.com/2010-04-01",
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._send_endpoint = f"{base_url}/Accounts/{account_sid}/Messages.json"
        self._client = client or httpx.Client(timeout=timeout)
        self._logger = logging.getLogger(__name__)

    def send(self, phone_number: str, message: str) -> SendReceipt:
        data = {
            "From": f"whatsapp:{self._from_number}",
            "To": f"whatsapp:{phone_number}",
            "Body": message,
        }
        try:
            resp = self._client.post(self._send_endpoint, data=data, auth=(self._account_sid, self._auth_token))
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Twilio request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                error_json = resp.json()
                error_code = error_json.get("code")
                error_message = error_json.get("message")
            except ValueError:
                error_code = None
                error_message = resp.text

            self._logger.error(
                "Twilio send failed",
                extra={
                    "status": resp.status_code,
                    "error_code": error_code,
                    "error_message": error_message,
                    "text_length": len(message),
                },
            )
            raise CollaboratorError(f"Twilio send failed ({resp.status_code}): {error_message}")

        body = resp.json()
        return SendReceipt(id=str(body.get("sid", "")), status=str(body.get("status", "queued")))
