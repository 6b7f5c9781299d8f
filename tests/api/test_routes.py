import asyncio
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from initsys.api.main import create_app
from initsys.lifecycle.controller import LifecycleController
from initsys.models.enums import LifecycleEventType, LifecycleState, Phase


@pytest.fixture
def finished_controller(make_controller):
    """Controller that went through a whole run with one failing task."""
    controller = make_controller(stop_on_error=False)

    def broken():
        raise ValueError("boom")

    controller.init(lambda: None, priority=1)
    controller.init(broken)
    controller.stop(lambda: None)
    controller.on(LifecycleEventType.READY, lambda event: controller.shutdown())
    asyncio.run(controller.run())
    return controller


def test_status_before_startup(controller):
    controller.init(lambda: None)
    controller.finish(lambda: None)
    client = TestClient(create_app(controller))

    response = client.get("/lifecycle/status")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "pre"
    assert body["starting_up"] is False
    assert body["closed"] is False
    assert body["exit_code"] is None
    assert body["completed_phases"] == []
    assert body["pending"] == {"init": 1, "start": 0, "stop": 0, "finish": 1}


def test_status_after_run(finished_controller):
    client = TestClient(create_app(finished_controller))

    body = client.get("/lifecycle/status").json()

    assert body["state"] == "end"
    assert body["closed"] is True
    assert body["exit_code"] == 0
    assert body["completed_phases"] == ["init", "start", "stop", "finish"]
    assert body["summary"].startswith("Tasks: total=3")


def test_task_list_and_filters(finished_controller):
    client = TestClient(create_app(finished_controller))

    body = client.get("/lifecycle/tasks").json()
    assert body["count"] == 3
    assert [t["phase"] for t in body["tasks"]] == ["init", "init", "stop"]
    assert body["tasks"][0]["priority"] == 1

    failed = client.get("/lifecycle/tasks", params={"status": "failed"}).json()
    assert failed["count"] == 1
    assert "boom" in failed["tasks"][0]["error"]

    stop = client.get("/lifecycle/tasks", params={"phase": "stop"}).json()
    assert stop["count"] == 1
    assert stop["tasks"][0]["status"] == "completed"


def test_unknown_task_status_is_rejected(controller):
    client = TestClient(create_app(controller))
    response = client.get("/lifecycle/tasks", params={"status": "sleeping"})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "UNKNOWN_TASK_STATUS"
    assert "failed" in error["details"]["valid_values"]


def test_shutdown_request_is_accepted():
    controller = MagicMock(spec=LifecycleController)
    controller.shutting_down = False
    controller.closed = False
    controller.state = LifecycleState.READY
    client = TestClient(create_app(controller))

    response = client.post("/lifecycle/shutdown", params={"exit_code": 4})

    assert response.status_code == 202
    assert response.json() == {"accepted": True, "state": "ready", "exit_code": 4}
    controller.shutdown.assert_called_once_with(4)


def test_shutdown_in_progress_conflicts():
    controller = MagicMock(spec=LifecycleController)
    controller.shutting_down = True
    controller.closed = False
    controller.state = LifecycleState.STOP
    client = TestClient(create_app(controller))

    response = client.post("/lifecycle/shutdown")

    assert response.status_code == 409
    body = response.json()
    assert body["error"]["code"] == "SHUTDOWN_IN_PROGRESS"
    assert body["error"]["details"] == {"state": "stop"}
    assert body["request_id"]
    controller.shutdown.assert_not_called()


def test_invalid_exit_code_is_a_validation_error():
    controller = MagicMock(spec=LifecycleController)
    client = TestClient(create_app(controller))

    response = client.post("/lifecycle/shutdown", params={"exit_code": 999})

    assert response.status_code == 422
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["validation_errors"][0]["field"] == "exit_code"
    controller.shutdown.assert_not_called()


def test_health_reflects_ready_state(controller):
    client = TestClient(create_app(controller))
    assert client.get("/health").json() == {"status": "unavailable", "state": "pre"}


def test_pending_counts_cover_every_phase(controller):
    client = TestClient(create_app(controller))
    body = client.get("/lifecycle/status").json()
    assert set(body["pending"]) == {p.label for p in Phase}
