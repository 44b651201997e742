"""Portal do cliente: consulta pública por CNJ ou CPF, sem autenticação."""
import asyncio
import logging
from typing import Optional

from habeas.judit import cooldown
from habeas.judit.client import JuditApiClient
from habeas.judit.cooldown import CooldownLimiter
from habeas.judit.errors import JuditError
from habeas.judit.normalizer import HistoryLookup, normalize_history_lookup
from habeas.judit.search import SearchKey, SearchType, normalize_search_key

logger = logging.getLogger(__name__)

PORTAL_MODES = {"cnj": SearchType.LAWSUIT_CNJ, "cpf": SearchType.CPF}


def portal_search(mode: str, raw: str) -> SearchKey:
    """Modo 'cnj' ou 'cpf' do formulário -> SearchKey normalizada."""
    search_type = PORTAL_MODES.get((mode or "").strip().lower(), mode)
    return normalize_search_key(search_type, raw)


class ClientPortal:
    def __init__(self, client: JuditApiClient, limiter: CooldownLimiter):
        self.client = client
        self.limiter = limiter
        self.last: Optional[HistoryLookup] = None

    @classmethod
    def from_settings(cls, client: Optional[JuditApiClient] = None) -> "ClientPortal":
        return cls(client or JuditApiClient(), cooldown.build_limiter_from_settings())

    async def _lookup(self, search: SearchKey) -> Optional[HistoryLookup]:
        try:
            data = await self.client.public_history_lookup(search.type.value, search.value)
        except JuditError as e:
            logger.warning(f"Lookup público falhou para {search.composite}: {e}")
            return self.last
        self.last = normalize_history_lookup(data)
        return self.last

    async def _create(self, search: SearchKey) -> None:
        body = {"search": search.to_wire(search_params={})}
        try:
            await self.client.public_create_request(body)
        except JuditError as e:
            # a consulta pública é best-effort; o histórico já salvo ainda é exibido
            logger.warning(f"Criação de consulta pública falhou para {search.composite}: {e}")

    async def submit(self, mode: str, raw: str) -> Optional[HistoryLookup]:
        """Dispara a consulta pública e busca o histórico existente em paralelo."""
        search = portal_search(mode, raw)
        self.last = None
        _, lookup = await asyncio.gather(self._create(search), self._lookup(search))
        return lookup

    def refresh_key(self, search: SearchKey) -> str:
        return cooldown.portal_key(search.type.value, search.value)

    def refresh_label(self, mode: str, raw: str) -> str:
        return self.limiter.label(self.refresh_key(portal_search(mode, raw)))

    async def refresh(self, mode: str, raw: str) -> Optional[HistoryLookup]:
        """Relê o histórico; dentro do cooldown não faz nada e devolve o último resultado."""
        search = portal_search(mode, raw)
        if not self.limiter.try_acquire(self.refresh_key(search)):
            return self.last
        return await self._lookup(search)
