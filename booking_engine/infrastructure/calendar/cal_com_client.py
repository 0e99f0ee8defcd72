from __future__ import annotations

import logging
from datetime import datetime

import httpx

from booking_engine.application.exceptions import CollaboratorError
from booking_engine.application.ports.calendar import CalendarEvent, CalendarEventDetails, CalendarPort
from booking_engine.core.config import settings


class CalComCalendar(CalendarPort):
    platform = "cal_com"

    def __init__(
        self,
        api_key: str | None = None,
        calendar_id: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key or settings.CAL_COM_API_KEY
        self._calendar_id = calendar_id or settings.CAL_COM_CALENDAR_ID
        self._base_url = base_url or settings.CAL_COM_BASE_URL
        self._client = client or httpx.Client(timeout=timeout or settings.COLLABORATOR_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._api_key:
            raise ValueError("CAL_COM_API_KEY is required for Cal.com calendar")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}

    def check_availability(self, start: datetime, end: datetime) -> bool:
        params = {
            "calendarId": self._calendar_id,
            "startTime": start.isoformat(),
            "endTime": end.isoformat(),
            "duration": int((end - start).total_seconds() // 60),
        }
        try:
            response = self._client.get(f"{self._base_url}/slots", params=params, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CollaboratorError(f"Cal.com availability check failed: {e}") from e

        for slot_str in data.get("slots", []):
            try:
                slot = datetime.fromisoformat(str(slot_str).replace("Z", "+00:00"))
            except ValueError:
                continue
            if slot == start:
                return True
        return False

    def create_event(self, details: CalendarEventDetails) -> CalendarEvent:
        payload = {
            "eventTypeId": self._calendar_id,
            "startTime": details.start.isoformat(),
            "endTime": details.end.isoformat(),
            "title": details.title,
            "description": details.description or "",
            "location": details.location or "",
        }
        if details.attendee_email:
            payload["attendeeEmail"] = details.attendee_email
        if details.attendee_name:
            payload["attendeeName"] = details.attendee_name

        try:
            response = self._client.post(f"{self._base_url}/bookings", json=payload, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CollaboratorError(f"Cal.com event creation failed: {e}") from e

        event_id = data.get("id") or data.get("bookingId")
        if not event_id:
            raise CollaboratorError("No event ID returned from Cal.com API")

        self._logger.info("Calendar event created", extra={"event_id": event_id, "title": details.title})
        return CalendarEvent(id=str(event_id), meeting_link=data.get("meetingUrl") or data.get("videoCallUrl"))

    def cancel_event(self, event_id: str, reason: str | None = None) -> None:
        try:
            response = self._client.request(
                "DELETE",
                f"{self._base_url}/bookings/{event_id}/cancel",
                json={"reason": reason or "Appointment cancelled"},
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Cal.com event cancellation failed: {e}") from e
        self._logger.info("Calendar event cancelled", extra={"event_id": event_id})

    def update_event(self, event_id: str, details: CalendarEventDetails) -> None:
        payload = {
            "startTime": details.start.isoformat(),
            "endTime": details.end.isoformat(),
            "title": details.title,
            "description": details.description or "",
        }
        try:
            response = self._client.patch(f"{self._base_url}/bookings/{event_id}", json=payload, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CollaboratorError(f"Cal.com event update failed: {e}") from e
        self._logger.info("Calendar event updated", extra={"event_id": event_id})
