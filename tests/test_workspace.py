import asyncio

import pytest
import redis

from habeas.config import Settings
from habeas.judit import cooldown
from habeas.judit.cooldown import CooldownLimiter, JsonFileStore, MemoryStore
from habeas.judit.models import Request
from habeas.judit.orchestrator import JuditOrchestrator
from habeas.judit.search import SearchKey, normalize_search_key
from habeas.judit.workspace import JuditWorkspace, ToastCollector


@pytest.fixture
def toasts():
    return ToastCollector()


@pytest.fixture
def workspace(orchestrator, toasts):
    return JuditWorkspace(orchestrator, toasts)


async def test_failed_load_keeps_last_known_good_list(workspace, backend, toasts):
    backend.on("GET", "/judit/requests", {"requests": [{"id": "r1"}]})
    await workspace.load_requests()

    backend.on("GET", "/judit/requests", {"error": "proibido"}, status=403)
    rows = await workspace.load_requests()

    assert [r.id for r in rows] == ["r1"]
    assert toasts.toasts[-1].variant == "destructive"
    assert toasts.toasts[-1].description == "proibido"


async def test_invalid_search_only_shows_toast(workspace, backend, toasts):
    assert await workspace.create_request(SearchKey(search_type="cpf", search_key="")) is None
    assert backend.calls == []
    assert toasts.toasts[0].title == "Dados inválidos"


async def test_saved_request_is_prepended_without_refetch(workspace, backend):
    workspace.requests = [Request(id="antigo")]
    backend.on("POST", "/judit/requests", {"saved": {"id": "novo"}})

    saved = await workspace.create_request(normalize_search_key("cpf", "12345678909"))

    assert saved.id == "novo"
    assert [r.id for r in workspace.requests] == ["novo", "antigo"]
    assert backend.paths() == [("POST", "/judit/requests")]


async def test_create_without_saved_row_refetches(workspace, backend):
    backend.on("POST", "/judit/requests", {"responses": []})
    backend.on("GET", "/judit/requests", {"requests": [{"id": "r7"}]})

    await workspace.create_request(normalize_search_key("cpf", "12345678909"))

    assert [r.id for r in workspace.requests] == ["r7"]


async def test_refresh_inside_cooldown_shows_countdown(workspace, backend, toasts):
    backend.on("POST", "/judit/requests/r1/refresh", {"request": {"id": "r1"}})
    backend.on("GET", "/judit/requests", {"requests": [{"id": "r1"}]})

    assert workspace.can_refresh_request("r1")
    await workspace.refresh_request("r1")
    assert not workspace.can_refresh_request("r1")
    assert workspace.refresh_request_label("r1") == "Aguarde 30s"

    calls_before = len(backend.calls)
    assert await workspace.refresh_request("r1") is None
    assert len(backend.calls) == calls_before
    assert toasts.toasts[-1].description == "Aguarde 30s para tentar novamente."


async def test_deleted_tracking_disables_actions(workspace, backend, toasts):
    backend.on("GET", "/judit/trackings", {"db": [{"tracking_id": "t1", "status": "deleted"}]})
    await workspace.load_trackings()

    assert not workspace.tracking_actions_enabled("t1")
    assert await workspace.pause_tracking("t1") is False
    assert toasts.toasts[-1].title == "Monitoramento indisponível"
    assert backend.paths() == [("GET", "/judit/trackings")]


async def test_tracking_action_failure_reloads_list(workspace, backend, toasts):
    backend.on("POST", "/judit/trackings/t1/resume", {"error": "inválido"}, status=400)
    backend.on("GET", "/judit/trackings", {"db": [{"tracking_id": "t1", "status": "paused"}]})

    assert await workspace.resume_tracking("t1") is False
    assert workspace.trackings[0].is_paused
    assert toasts.toasts[-1].variant == "destructive"


async def test_delete_with_failed_reload_reports_the_deletion(workspace, backend, toasts):
    backend.on("GET", "/judit/trackings", {"db": [{"tracking_id": "t1", "status": "updated"}]})
    await workspace.load_trackings()

    backend.on("DELETE", "/judit/trackings/t1", {"ok": True})
    backend.on("GET", "/judit/trackings", {"error": "proibido"}, status=403)

    assert await workspace.delete_tracking("t1") is True
    assert toasts.toasts[-1].title == "Monitoramento excluído"
    assert not workspace.tracking_actions_enabled("t1")


async def test_load_all_and_quota_label(workspace, backend):
    backend.on("GET", "/judit/requests", {"requests": []})
    backend.on("GET", "/judit/trackings", {"db": []})
    backend.on("GET", "/publications/external/judit/quota", {"plan": {"maxQueries": 100}, "usage": {"used": 42}})

    assert workspace.quota_label == "Judit carregando..."
    await workspace.load_all()
    assert workspace.quota_label == "Judit 42/100"


async def test_history_labels_and_force_sync(workspace, backend, clock):
    backend.on("GET", "/judit/trackings/t1/history", {"page_data": [{"response_id": "h1"}]})

    assert workspace.history_sync_label("t1") == "Sincronizar"
    page = await workspace.load_history("t1", force_sync=True)
    assert page.page_data[0].response_id == "h1"
    assert workspace.history_sync_label("t1") == "Aguarde 30s"
    assert workspace.sync_trackings_label() == "Sincronizar"


async def test_closed_workspace_discards_late_results(workspace, backend):
    backend.on("GET", "/judit/requests", {"requests": [{"id": "r1"}]})
    workspace.close()
    await workspace.load_requests()
    assert workspace.requests == []


class _GatedOrchestrator:
    """Respostas liberadas manualmente, na ordem que o teste escolher."""

    def __init__(self):
        self.gates = []

    async def list_requests(self):
        gate = asyncio.Event()
        self.gates.append(gate)
        number = len(self.gates)
        await gate.wait()
        return [Request(id=f"r{number}")]


async def test_out_of_order_response_is_discarded(toasts):
    orchestrator = _GatedOrchestrator()
    workspace = JuditWorkspace(orchestrator, toasts)

    first = asyncio.create_task(workspace.load_requests())
    await asyncio.sleep(0)
    second = asyncio.create_task(workspace.load_requests())
    await asyncio.sleep(0)

    orchestrator.gates[1].set()
    await second
    orchestrator.gates[0].set()
    await first

    assert [r.id for r in workspace.requests] == ["r2"]


class _UnreachableRedisStore(MemoryStore):
    def get(self, key):
        raise redis.exceptions.ConnectionError("Connection refused")

    def set(self, key, value):
        raise redis.exceptions.ConnectionError("Connection refused")


async def test_unreachable_cooldown_store_does_not_break_refresh(judit_client, backend, clock, toasts):
    limiter = CooldownLimiter(_UnreachableRedisStore(), clock)
    ws = JuditWorkspace(JuditOrchestrator(judit_client, limiter), toasts)
    backend.on("POST", "/judit/requests/r1/refresh", {"request": {"id": "r1"}})
    backend.on("GET", "/judit/requests", {"requests": [{"id": "r1"}]})

    updated = await ws.refresh_request("r1")

    assert updated.id == "r1"
    assert toasts.toasts[-1].title == "Atualização solicitada"


async def test_workspace_from_settings_uses_durable_store(monkeypatch, tmp_path):
    path = str(tmp_path / "c.json")
    monkeypatch.setattr(
        cooldown, "settings", Settings(_env_file=None, JUDIT_COOLDOWN_STORE="file", JUDIT_COOLDOWN_FILE=path)
    )
    ws = JuditWorkspace.from_settings()
    await ws.orchestrator.client.close()

    assert isinstance(ws.orchestrator.limiter.store, JsonFileStore)
    assert ws.orchestrator.limiter.window_ms == 30_000
