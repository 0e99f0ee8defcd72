import logging

from fastapi.testclient import TestClient

from booking_engine.main import ContextFormatter, app


def test_health():
    # no context manager: the lifespan (and the scheduler threads) stay off
    client = TestClient(app)

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_context_formatter_appends_known_keys():
    formatter = ContextFormatter("%(levelname)s:%(name)s:%(message)s")
    record = logging.LogRecord("booking", logging.INFO, __file__, 1, "Booking created", None, None)
    record.booking_id = 7
    record.status = "pending"

    assert formatter.format(record) == "INFO:booking:Booking created | booking_id=7 status=pending"
