import logging
from contextlib import asynccontextmanager
from dataclasses import asdict

from fastapi import FastAPI

from booking_engine.core.config import settings
from booking_engine.wiring.dependencies import get_notification_scheduler, get_periodic_scheduler


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in (
            "booking_id",
            "booking_number",
            "notification_id",
            "notification_type",
            "status",
            "task",
            "error",
            "reason",
        ):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    runner = get_periodic_scheduler()
    if settings.SCHEDULER_ENABLED:
        runner.start()
    try:
        yield
    finally:
        runner.stop()


app = FastAPI(title="Booking Engine", version="1.0.0", lifespan=lifespan)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/scheduler/stats")
def scheduler_stats() -> dict:
    return asdict(get_notification_scheduler().stats())
