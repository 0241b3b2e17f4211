from fastapi.testclient import TestClient

import samsync.scheduler as scheduler_module
from samsync.main import app


def test_health_and_status(monkeypatch):
    monkeypatch.setattr(scheduler_module, "_scheduler", None)
    # no context manager: startup hooks (and the real scheduler) stay off
    client = TestClient(app)

    assert client.get("/health").json() == {"status": "ok"}
    assert client.get("/scheduler/status").json() == {"running": False, "jobs": []}
    assert client.get("/").json()["endpoints"]["health"] == "/health"
