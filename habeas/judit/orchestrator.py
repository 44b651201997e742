"""
Contratos das operações Judit (consultas e monitoramentos).

Cada operação é um wrapper fino sobre um endpoint do backend, mas com
regras próprias: validação antes da rede, cooldown nas ações manuais e
recarga completa da lista de monitoramentos após pausa/reativação/exclusão.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import EmailStr, TypeAdapter, ValidationError

from habeas.judit import cooldown
from habeas.judit.client import JuditApiClient
from habeas.judit.cooldown import CooldownLimiter
from habeas.judit.errors import (
    CooldownActiveError,
    SearchValidationError,
    TrackingDeletedError,
    TrackingValidationError,
)
from habeas.judit.fields import as_dict, as_list, first_of
from habeas.judit.models import HistoryPage, Request, Tracking, TrackingStatus
from habeas.judit.normalizer import (
    HistoryLookup,
    extract_response_list,
    extract_tracking_list,
    normalize_history_lookup,
)
from habeas.judit.search import SearchKey, SearchType

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)


def split_csv(value: Union[str, Iterable[str], None]) -> List[str]:
    """'a@x.com, b@y.com,' -> ['a@x.com', 'b@y.com']. Listas já prontas também são aceitas."""
    if value is None:
        return []
    parts = value.split(",") if isinstance(value, str) else list(value)
    return [str(p).strip() for p in parts if str(p).strip()]


@dataclass
class TrackingParams:
    """Entrada do formulário de novo monitoramento (e-mails e termos em CSV)."""

    search: SearchKey
    recurrence: int = 1
    notification_emails: Union[str, List[str], None] = None
    step_terms: Union[str, List[str], None] = None
    with_attachments: bool = False
    fixed_time: bool = False
    hour_range: int = 21

    def build_body(self) -> Dict[str, Any]:
        if not isinstance(self.search, SearchKey) or not self.search.value:
            raise TrackingValidationError("Informe a chave de busca do monitoramento")
        if not isinstance(self.recurrence, int) or self.recurrence < 1:
            raise TrackingValidationError("A recorrência deve ser de pelo menos 1 dia")
        if not isinstance(self.hour_range, int) or not 0 <= self.hour_range <= 23:
            raise TrackingValidationError("O horário deve estar entre 0 e 23")

        emails = split_csv(self.notification_emails)
        for email in emails:
            try:
                _email_adapter.validate_python(email)
            except ValidationError:
                raise TrackingValidationError(f"E-mail inválido: {email}") from None

        return {
            "recurrence": self.recurrence,
            "search": self.search.to_wire(),
            "notification_emails": emails,
            "notification_filters": {"step_terms": split_csv(self.step_terms)},
            "with_attachments": bool(self.with_attachments),
            "fixed_time": bool(self.fixed_time),
            "hour_range": self.hour_range,
        }


@dataclass
class CreateRequestOutcome:
    """`saved` entra direto no cache local; sem ele, quem chamou deve recarregar a lista."""

    saved: Optional[Request] = None
    responses: List[Any] = field(default_factory=list)

    @property
    def needs_refetch(self) -> bool:
        return self.saved is None


class JuditOrchestrator:
    def __init__(self, client: JuditApiClient, limiter: CooldownLimiter):
        self.client = client
        self.limiter = limiter
        # último status conhecido de cada monitoramento (atualizado a cada listagem)
        self._tracking_status: Dict[str, TrackingStatus] = {}

    @classmethod
    def from_settings(cls, client: Optional[JuditApiClient] = None) -> "JuditOrchestrator":
        """Cliente e limitador configurados pelo ambiente (store durável por padrão)."""
        return cls(client or JuditApiClient(), cooldown.build_limiter_from_settings())

    # ───── Consultas ─────

    def build_request_body(
        self,
        search: SearchKey,
        response_type: Optional[str] = "lawsuit",
        on_demand: bool = False,
        ai_summary: bool = False,
        search_params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if not isinstance(search, SearchKey) or not search.value:
            raise SearchValidationError("Informe a chave de busca")
        wire = search.to_wire(
            search_params=search_params or {},
            # o provedor só aceita response_type em buscas por CNJ
            response_type=response_type if search.type == SearchType.LAWSUIT_CNJ else None,
            on_demand=True if on_demand else None,
        )
        body: Dict[str, Any] = {"search": wire}
        if ai_summary:
            body["judit_ia"] = ["summary"]
        return body

    async def create_request(
        self,
        search: SearchKey,
        response_type: Optional[str] = "lawsuit",
        on_demand: bool = False,
        ai_summary: bool = False,
        search_params: Optional[Dict[str, Any]] = None,
    ) -> CreateRequestOutcome:
        body = self.build_request_body(search, response_type, on_demand, ai_summary, search_params)
        logger.info(f"Criando consulta Judit ({search.composite}, on_demand={on_demand}).")
        data = await self.client.create_request(body)
        return CreateRequestOutcome(
            saved=Request.from_payload(data.get("saved")),
            responses=extract_response_list(data),
        )

    async def list_requests(self) -> List[Request]:
        data = await self.client.list_requests()
        rows = as_list(first_of(data, ("requests", "data")))
        return [req for req in (Request.from_payload(r) for r in rows) if req is not None]

    async def get_request(self, request_id: str) -> Optional[Request]:
        data = await self.client.get_request(request_id)
        return Request.from_payload(first_of(data, ("request",), data))

    async def refresh_request(self, request_id: str) -> Optional[Request]:
        key = cooldown.request_key(request_id)
        self._acquire(key)
        data = await self.client.refresh_request(request_id)
        return Request.from_payload(first_of(data, ("request", "saved"), data))

    # ───── Monitoramentos ─────

    async def register_tracking(self, params: TrackingParams) -> Optional[Tracking]:
        body = params.build_body()
        logger.info(f"Registrando monitoramento Judit para {params.search.composite}.")
        data = await self.client.register_tracking(body)
        tracking = Tracking.from_payload(first_of(data, ("tracking",), data))
        if tracking is not None:
            self._tracking_status[tracking.tracking_id] = tracking.status
        return tracking

    async def list_trackings(self, force_sync: bool = False) -> List[Tracking]:
        if force_sync:
            self._acquire(cooldown.search_key(cooldown.TRACKINGS_SYNC_KEY))
        data = await self.client.list_trackings(force_sync=force_sync)
        trackings = [t for t in (Tracking.from_payload(raw) for raw in extract_tracking_list(data)) if t]
        for t in trackings:
            # deleted é terminal: uma listagem atrasada não reabre o monitoramento
            if self._tracking_status.get(t.tracking_id) != TrackingStatus.DELETED:
                self._tracking_status[t.tracking_id] = t.status
        return trackings

    def known_status(self, tracking_id: str) -> Optional[TrackingStatus]:
        return self._tracking_status.get(tracking_id)

    async def pause_tracking(self, tracking_id: str) -> List[Tracking]:
        self._ensure_not_deleted(tracking_id)
        await self.client.pause_tracking(tracking_id)
        return await self.list_trackings()

    async def resume_tracking(self, tracking_id: str) -> List[Tracking]:
        self._ensure_not_deleted(tracking_id)
        await self.client.resume_tracking(tracking_id)
        return await self.list_trackings()

    async def delete_tracking(self, tracking_id: str) -> List[Tracking]:
        self._ensure_not_deleted(tracking_id)
        await self.client.delete_tracking(tracking_id)
        # o backend some com o monitoramento excluído da listagem; o status fica registrado aqui
        self._tracking_status[tracking_id] = TrackingStatus.DELETED
        logger.info(f"Monitoramento {tracking_id} excluído.")
        # a lista é recarregada do servidor mesmo na exclusão, sem remoção local
        return await self.list_trackings()

    async def fetch_tracking_history(self, tracking_id: str, page: int = 1, page_size: int = 20) -> HistoryPage:
        data = await self.client.tracking_history(tracking_id, page=page, page_size=page_size)
        return HistoryPage.from_payload(data, page, page_size)

    async def force_sync_tracking_history(
        self, tracking_id: str, page: int = 1, page_size: int = 20
    ) -> HistoryPage:
        self._ensure_not_deleted(tracking_id)
        self._acquire(cooldown.history_sync_key(tracking_id))
        data = await self.client.tracking_history(tracking_id, page=page, page_size=page_size, force_sync=True)
        return HistoryPage.from_payload(data, page, page_size)

    async def get_history_item(self, response_id: str) -> Dict[str, Any]:
        data = await self.client.history_item(response_id)
        return as_dict(first_of(data, ("item",), data))

    async def lookup_history(self, search: SearchKey) -> HistoryLookup:
        data = await self.client.history_lookup(search.type.value, search.value)
        return normalize_history_lookup(data)

    # ───── Guardas ─────

    def _acquire(self, key: str) -> None:
        if not self.limiter.try_acquire(key):
            raise CooldownActiveError(key, self.limiter.remaining(key))

    def _ensure_not_deleted(self, tracking_id: str) -> None:
        if self._tracking_status.get(tracking_id) == TrackingStatus.DELETED:
            logger.warning(f"Operação recusada: monitoramento {tracking_id} está deletado.")
            raise TrackingDeletedError(tracking_id)
