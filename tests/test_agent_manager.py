import threading
import time

import pytest
from fastapi.testclient import TestClient

from conftest import ScriptedModel, click, plan
from screenpilot.errors import AgentError, ModelError
from screenpilot.models import AgentStatus
from services.agent_manager import AgentManager


class GatedModel(ScriptedModel):
    """Blocks every analysis until the gate opens."""

    def __init__(self, replies):
        super().__init__(replies)
        self.gate = threading.Event()

    def complete(self, *args):
        self.gate.wait(timeout=5)
        return super().complete(*args)


def wait_until(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


@pytest.fixture
def manager():
    manager = AgentManager(init_timeout=5, stop_timeout=5)
    yield manager
    manager.stop_all()


@pytest.fixture
def register(manager, screen_operator, input_operator, agent_config):
    def build(model, **settings):
        return manager.create_agent(
            agent_config(**settings),
            model=model,
            screen_operator=screen_operator,
            input_operator=input_operator,
        )

    return build


class TestAgentManager:
    def test_run_in_background(self, manager, register):
        agent_id = register(ScriptedModel([plan(click(), {"type": "finished"})]))
        results = manager.execute(agent_id, "click once").result(timeout=5)

        assert [r.success for r in results] == [True, True]
        status = manager.get_status(agent_id)
        assert status["busy"] is False
        assert status["last_result_count"] == 2
        assert status["last_instruction"] == "click once"
        assert manager.get_results(agent_id) == results
        assert manager.get_sessions()[0].id == status["last_session_id"]

    def test_agents_share_the_session_manager(self, manager, register):
        agent_id = register(ScriptedModel([plan()]))
        assert manager.get_agent(agent_id).session_manager is manager.session_manager

    def test_one_run_at_a_time(self, manager, register):
        model = GatedModel([plan()])
        agent_id = register(model)
        future = manager.execute(agent_id, "wait")

        with pytest.raises(AgentError) as exc:
            manager.execute(agent_id, "again")
        assert exc.value.code == "ALREADY_RUNNING"

        model.gate.set()
        assert future.result(timeout=5) == []

    def test_failed_run_is_recorded(self, manager, register):
        agent_id = register(ScriptedModel([ModelError("quota exceeded")]))
        assert manager.execute(agent_id, "click").result(timeout=5) == []

        status = manager.get_status(agent_id)
        assert "quota exceeded" in status["last_error"]
        assert status["status"] == AgentStatus.ERROR.value

    def test_cancel_keeps_agent(self, manager, register):
        model = GatedModel([plan(click())])
        agent_id = register(model, max_iterations=50)
        future = manager.execute(agent_id, "click forever")
        agent = manager.get_agent(agent_id)
        assert wait_until(lambda: agent.status == AgentStatus.RUNNING)

        manager.cancel(agent_id)
        model.gate.set()
        results = future.result(timeout=5)
        assert results[-1].error == "Execution cancelled"
        assert agent_id in manager.list_agent_ids()

    def test_stop_removes_agent(self, manager, register, screen_operator):
        agent_id = register(ScriptedModel([plan()]))
        manager.stop(agent_id)

        assert agent_id not in manager.list_agent_ids()
        assert not screen_operator.is_initialized
        with pytest.raises(AgentError) as exc:
            manager.get_status(agent_id)
        assert exc.value.code == "AGENT_NOT_FOUND"

    def test_callback_receives_result(self, manager, register, monkeypatch):
        posted = {}

        def fake_post(url, json=None, timeout=None):
            posted.update(url=url, payload=json, timeout=timeout)

        monkeypatch.setattr("services.agent_manager.requests.post", fake_post)
        agent_id = register(ScriptedModel([plan(click(), {"type": "finished"})]))
        manager.execute(agent_id, "click", callback_url="http://host/done").result(timeout=5)

        assert posted["url"] == "http://host/done"
        assert posted["timeout"] == 10
        payload = posted["payload"]
        assert payload["agent_id"] == agent_id
        assert payload["stats"]["total_actions"] == 2
        assert "screenshot" not in payload["results"][0]


class TestRoutes:
    @pytest.fixture
    def client(self, manager, monkeypatch):
        from api import create_app

        monkeypatch.setattr("api.routes.get_agent_manager", lambda: manager)
        return TestClient(create_app())

    def test_health(self, client):
        assert client.get("/").json()["status"] == "ok"

    def test_agent_endpoints(self, client, manager, register):
        agent_id = register(ScriptedModel([plan(click(), {"type": "finished"})]))

        listed = client.get("/agents").json()["agents"]
        assert [a["id"] for a in listed] == [agent_id]

        config = client.get(f"/agents/{agent_id}/config").json()["data"]
        assert "api_key" not in config["model"]

        response = client.post(f"/agents/{agent_id}/execute", json={"instruction": "click"})
        assert response.json()["success"] is True
        assert wait_until(lambda: manager.get_status(agent_id)["last_result_count"] == 2)

        results = client.get(f"/agents/{agent_id}/results").json()["data"]["results"]
        assert [r["success"] for r in results] == [True, True]
        events = client.get(f"/agents/{agent_id}/events", params={"limit": 5}).json()["events"]
        assert len(events) == 5

        sessions = client.get("/sessions").json()
        assert sessions["summary"]["completed"] == 1
        session_id = sessions["sessions"][0]["id"]
        detail = client.get(f"/sessions/{session_id}").json()
        assert detail["stats"]["total_actions"] == 2

        assert client.delete(f"/agents/{agent_id}").json()["success"] is True
        assert client.get(f"/agents/{agent_id}").status_code == 404

    def test_invalid_state_is_reported(self, client, register):
        agent_id = register(ScriptedModel([plan()]))
        body = client.post(f"/agents/{agent_id}/pause").json()
        assert body["success"] is False
        assert body["data"]["code"] == "INVALID_STATE"

    def test_update_config(self, client, register):
        agent_id = register(ScriptedModel([plan()]))
        response = client.patch(
            f"/agents/{agent_id}/config", json={"config": {"settings": {"max_iterations": 4}}}
        )
        assert response.json()["data"]["settings"]["max_iterations"] == 4

    def test_unknown_agent_and_session(self, client):
        assert client.get("/agents/missing").status_code == 404
        assert client.get("/agents/missing/events").status_code == 404
        assert client.get("/sessions/missing").status_code == 404

    def test_create_without_credentials_fails(self, client, monkeypatch):
        from config import Config

        monkeypatch.setattr(Config, "SETTINGS", {"model": {"provider": "openai"}})
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        body = client.post("/agents", json={"operator_type": "local_computer"}).json()
        assert body["success"] is False
        assert body["data"]["code"] == "INITIALIZATION_FAILED"

    def test_create_with_invalid_settings_fails(self, client, manager):
        response = client.post(
            "/agents", json={"operator_type": "local_computer", "settings": {"max_iterations": 0}}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["data"]["code"] == "INVALID_CONFIG"
        assert manager.list_status() == []
