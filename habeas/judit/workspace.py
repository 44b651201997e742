"""
Fronteira de interface da área Judit (equivalente às telas de consultas e
monitoramentos).

Mantém as últimas listas válidas, transforma falhas em avisos ("toasts") e
nunca propaga exceção: em caso de erro a lista autoritativa é recarregada do
servidor. Resultados assíncronos só são aplicados se ainda forem os mais
recentes para a mesma chave e se o workspace continuar ativo.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

from habeas.judit import cooldown
from habeas.judit.errors import (
    CooldownActiveError,
    JuditError,
    JuditValidationError,
    TrackingDeletedError,
)
from habeas.judit.models import (
    HistoryPage,
    QuotaSnapshot,
    Request,
    Tracking,
    TrackingStatus,
)
from habeas.judit.orchestrator import JuditOrchestrator, TrackingParams
from habeas.judit.quota import fetch_quota, quota_label
from habeas.judit.search import SearchKey

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Toast:
    title: str
    description: str = ""
    variant: str = "default"  # default | destructive


class Notifier(ABC):
    @abstractmethod
    def notify(self, toast: Toast) -> None:
        ...


class LoggingNotifier(Notifier):
    def notify(self, toast: Toast) -> None:
        level = logging.WARNING if toast.variant == "destructive" else logging.INFO
        logger.log(level, f"[toast] {toast.title}: {toast.description}")


class ToastCollector(Notifier):
    """Guarda os avisos em memória (usado por CLIs e testes)."""

    def __init__(self):
        self.toasts: List[Toast] = []

    def notify(self, toast: Toast) -> None:
        self.toasts.append(toast)


class JuditWorkspace:
    def __init__(self, orchestrator: JuditOrchestrator, notifier: Optional[Notifier] = None):
        self.orchestrator = orchestrator
        self.notifier = notifier or LoggingNotifier()
        self.requests: List[Request] = []
        self.trackings: List[Tracking] = []
        self.history: Dict[str, HistoryPage] = {}
        self.quota: Optional[QuotaSnapshot] = None
        self.active = True
        self._generations: Dict[str, int] = {}

    @classmethod
    def from_settings(cls, notifier: Optional[Notifier] = None) -> "JuditWorkspace":
        return cls(JuditOrchestrator.from_settings(), notifier)

    # ───── Ciclo de vida / staleness ─────

    def close(self) -> None:
        """Equivale a desmontar a tela: respostas pendentes passam a ser descartadas."""
        self.active = False

    def _begin(self, key: str) -> int:
        self._generations[key] = self._generations.get(key, 0) + 1
        return self._generations[key]

    def _is_current(self, key: str, generation: int) -> bool:
        return self.active and self._generations.get(key) == generation

    def _fail(self, title: str, error: Exception) -> None:
        if isinstance(error, CooldownActiveError):
            seconds = -(-error.remaining_ms // 1000)
            self.notifier.notify(Toast(title, f"Aguarde {seconds}s para tentar novamente."))
            return
        logger.error(f"{title}: {error}")
        self.notifier.notify(Toast(title, str(error), "destructive"))

    # ───── Cargas ─────

    async def load_requests(self) -> List[Request]:
        gen = self._begin("requests")
        try:
            rows = await self.orchestrator.list_requests()
        except JuditError as e:
            self._fail("Erro ao carregar consultas", e)
            return self.requests
        if self._is_current("requests", gen):
            self.requests = rows
        return self.requests

    async def load_trackings(self, force_sync: bool = False) -> List[Tracking]:
        gen = self._begin("trackings")
        try:
            rows = await self.orchestrator.list_trackings(force_sync=force_sync)
        except JuditError as e:
            self._fail("Erro ao carregar monitoramentos", e)
            return self.trackings
        if self._is_current("trackings", gen):
            self.trackings = rows
        return self.trackings

    async def load_quota(self) -> Optional[QuotaSnapshot]:
        gen = self._begin("quota")
        snapshot = await fetch_quota(self.orchestrator.client)
        if self._is_current("quota", gen):
            self.quota = snapshot
        return self.quota

    async def load_all(self) -> None:
        await asyncio.gather(self.load_requests(), self.load_trackings(), self.load_quota())

    @property
    def quota_label(self) -> str:
        return quota_label(self.quota)

    # ───── Consultas ─────

    async def create_request(
        self,
        search: SearchKey,
        response_type: Optional[str] = "lawsuit",
        on_demand: bool = False,
        ai_summary: bool = False,
    ) -> Optional[Request]:
        try:
            outcome = await self.orchestrator.create_request(search, response_type, on_demand, ai_summary)
        except JuditValidationError as e:
            self.notifier.notify(Toast("Dados inválidos", str(e), "destructive"))
            return None
        except JuditError as e:
            self._fail("Erro ao criar consulta", e)
            await self.load_requests()
            return None

        self.notifier.notify(Toast("Consulta criada", search.composite))
        if outcome.saved is not None:
            self.requests = [outcome.saved] + [r for r in self.requests if r.id != outcome.saved.id]
        else:
            await self.load_requests()
        return outcome.saved

    def can_refresh_request(self, request_id: str) -> bool:
        return self.orchestrator.limiter.is_available(cooldown.request_key(request_id))

    def refresh_request_label(self, request_id: str) -> str:
        return self.orchestrator.limiter.label(cooldown.request_key(request_id))

    async def refresh_request(self, request_id: str) -> Optional[Request]:
        try:
            updated = await self.orchestrator.refresh_request(request_id)
        except JuditError as e:
            self._fail("Erro ao atualizar consulta", e)
            if not isinstance(e, CooldownActiveError):
                await self.load_requests()
            return None
        self.notifier.notify(Toast("Atualização solicitada", "A consulta será reexecutada."))
        await self.load_requests()
        return updated

    # ───── Monitoramentos ─────

    async def register_tracking(self, params: TrackingParams) -> Optional[Tracking]:
        try:
            tracking = await self.orchestrator.register_tracking(params)
        except JuditValidationError as e:
            self.notifier.notify(Toast("Dados inválidos", str(e), "destructive"))
            return None
        except JuditError as e:
            self._fail("Erro ao registrar monitoramento", e)
            await self.load_trackings()
            return None
        self.notifier.notify(Toast("Monitoramento registrado", params.search.composite))
        await self.load_trackings()
        return tracking

    def tracking_actions_enabled(self, tracking_id: str) -> bool:
        """Pausar/reativar/sincronizar ficam indisponíveis para monitoramentos deletados."""
        return self.orchestrator.known_status(tracking_id) != TrackingStatus.DELETED

    async def _tracking_action(self, tracking_id: str, action: str) -> bool:
        op = {
            "pause": self.orchestrator.pause_tracking,
            "resume": self.orchestrator.resume_tracking,
            "delete": self.orchestrator.delete_tracking,
        }[action]
        gen = self._begin("trackings")
        try:
            rows = await op(tracking_id)
        except TrackingDeletedError as e:
            self._fail("Monitoramento indisponível", e)
            return False
        except JuditError as e:
            if action == "delete" and not self.tracking_actions_enabled(tracking_id):
                # a exclusão foi aceita; só a recarga da lista falhou
                self.notifier.notify(Toast("Monitoramento excluído", "Não foi possível recarregar a lista."))
                logger.warning(f"Falha ao recarregar monitoramentos após excluir {tracking_id}: {e}")
                return True
            self._fail("Erro ao atualizar monitoramento", e)
            await self.load_trackings()
            return False
        if self._is_current("trackings", gen):
            self.trackings = rows
        return True

    async def pause_tracking(self, tracking_id: str) -> bool:
        return await self._tracking_action(tracking_id, "pause")

    async def resume_tracking(self, tracking_id: str) -> bool:
        return await self._tracking_action(tracking_id, "resume")

    async def delete_tracking(self, tracking_id: str) -> bool:
        return await self._tracking_action(tracking_id, "delete")

    def sync_trackings_label(self) -> str:
        key = cooldown.search_key(cooldown.TRACKINGS_SYNC_KEY)
        return self.orchestrator.limiter.label(key, idle="Sincronizar")

    # ───── Histórico ─────

    def history_sync_label(self, tracking_id: str) -> str:
        return self.orchestrator.limiter.label(cooldown.history_sync_key(tracking_id), idle="Sincronizar")

    async def load_history(
        self, tracking_id: str, page: int = 1, page_size: int = 20, force_sync: bool = False
    ) -> Optional[HistoryPage]:
        key = f"history:{tracking_id}"
        gen = self._begin(key)
        try:
            if force_sync:
                result = await self.orchestrator.force_sync_tracking_history(tracking_id, page, page_size)
            else:
                result = await self.orchestrator.fetch_tracking_history(tracking_id, page, page_size)
        except JuditError as e:
            self._fail("Erro ao carregar histórico", e)
            return self.history.get(tracking_id)
        if self._is_current(key, gen):
            self.history[tracking_id] = result
        return self.history.get(tracking_id)
