from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo

from booking_engine.domain.entities.booking import Booking
from booking_engine.domain.entities.client import Client
from booking_engine.domain.entities.notification import NotificationType
from booking_engine.domain.entities.service_catalog import Service

PREPARATION_INSTRUCTIONS = {
    "corte": (
        "• Come with clean, dry hair\n"
        "• Skip styling products\n"
        "• Bring reference photos if you have something specific in mind"
    ),
    "coloracion": (
        "• Do NOT wash your hair 24-48h before the appointment\n"
        "• Come with dry hair and no products\n"
        "• Avoid conditioner in the days before\n"
        "• Tell us about any recent chemical treatments"
    ),
    "tratamiento": (
        "• Come with clean, damp hair\n"
        "• No hair masks in the 2 days before\n"
        "• Tell us about allergies or sensitivities\n"
        "• Plan 2-3 hours for the full process"
    ),
    "alisado": (
        "• Wash your hair the day before, not the same day\n"
        "• Come with dry hair and no products\n"
        "• Plan 3-4 hours for the full process"
    ),
    "permanente": (
        "• Do not wash your hair the same day\n"
        "• Tell us about any recent coloring\n"
        "• Bring reference photos of the curl you want"
    ),
}

DEFAULT_INSTRUCTIONS = (
    "• Please arrive on time\n"
    "• Tell us about allergies or sensitivities\n"
    "• Bring your ID"
)

REMINDER_TIMEFRAMES = {
    NotificationType.BOOKING_REMINDER_24H: "24 hours",
    NotificationType.BOOKING_REMINDER_2H: "2 hours",
}


def requires_preparation(service: Service, allow_list: list[str]) -> bool:
    if service.requires_preparation:
        return True
    haystack = f"{service.category} {service.name}".lower()
    return any(item.lower() in haystack for item in allow_list)


def preparation_instructions_for(service: Service) -> str:
    haystack = f"{service.category} {service.name}".lower()
    for key, instructions in PREPARATION_INSTRUCTIONS.items():
        if key in haystack:
            return instructions
    return DEFAULT_INSTRUCTIONS


def _when(start: datetime, timezone: ZoneInfo) -> tuple[str, str]:
    local = start.astimezone(timezone)
    return local.strftime("%A, %B %d %Y"), local.strftime("%H:%M")


def build_confirmation_message(
    booking: Booking, client: Client, service: Service, timezone: ZoneInfo, business_name: str
) -> str:
    day, hour = _when(booking.start_time, timezone)
    return (
        f"✅ *BOOKING CONFIRMED*\n\n"
        f"Hi {client.first_name}, your appointment is booked:\n\n"
        f"📅 *{day}*\n"
        f"🕐 *{hour}*\n"
        f"💇 *{service.name}* ({booking.duration_minutes} min)\n"
        f"💶 {booking.final_price} {booking.currency}\n\n"
        f"Booking number: {booking.booking_number}\n"
        f"Confirmation code: *{booking.confirmation_code}*\n\n"
        f"_{business_name}_"
    )


def build_reminder_message(
    booking: Booking,
    client: Client,
    service: Service,
    timezone: ZoneInfo,
    business_name: str,
    timeframe: str,
) -> str:
    day, hour = _when(booking.start_time, timezone)
    return (
        f"⏰ *APPOINTMENT REMINDER*\n\n"
        f"Hi {client.first_name}, your appointment is in {timeframe}:\n\n"
        f"📅 *{day}*\n"
        f"🕐 *{hour}*\n"
        f"💇 *{service.name}*\n\n"
        f"Need to change it? Reply with your code *{booking.confirmation_code}*.\n\n"
        f"_{business_name}_"
    )


def build_preparation_message(
    booking: Booking, client: Client, service: Service, timezone: ZoneInfo, business_name: str
) -> str:
    day, hour = _when(booking.start_time, timezone)
    return (
        f"💡 *PREPARING FOR YOUR APPOINTMENT*\n\n"
        f"Hi {client.first_name}, your appointment is coming up:\n\n"
        f"📅 *{day}*\n"
        f"🕐 *{hour}*\n"
        f"💇 *{service.name}*\n\n"
        f"📋 *How to prepare:*\n\n"
        f"{preparation_instructions_for(service)}\n\n"
        f"Any questions, just reply to this message.\n\n"
        f"_{business_name}_"
    )


def build_message(
    notification_type: NotificationType,
    booking: Booking,
    client: Client,
    service: Service,
    timezone: ZoneInfo,
    business_name: str,
) -> str:
    if notification_type == NotificationType.BOOKING_CONFIRMATION:
        return build_confirmation_message(booking, client, service, timezone, business_name)
    if notification_type in REMINDER_TIMEFRAMES:
        return build_reminder_message(
            booking, client, service, timezone, business_name, REMINDER_TIMEFRAMES[notification_type]
        )
    if notification_type == NotificationType.PREPARATION_INSTRUCTIONS:
        return build_preparation_message(booking, client, service, timezone, business_name)
    raise ValueError(f"Unknown notification type: {notification_type}")
