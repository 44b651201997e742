from enum import Enum
from typing import Any, FrozenSet, Mapping

from habeas.judit.errors import InvalidTransitionError


class PublicationStatus(str, Enum):
    NOVA = "nova"
    PENDENTE = "pendente"
    ATRIBUIDA = "atribuida"
    FINALIZADA = "finalizada"
    DESCARTADA = "descartada"


PUBLICATION_TRANSITIONS: Mapping[PublicationStatus, FrozenSet[PublicationStatus]] = {
    PublicationStatus.NOVA: frozenset({PublicationStatus.PENDENTE}),
    PublicationStatus.PENDENTE: frozenset(
        {PublicationStatus.ATRIBUIDA, PublicationStatus.FINALIZADA, PublicationStatus.DESCARTADA}
    ),
    PublicationStatus.ATRIBUIDA: frozenset({PublicationStatus.FINALIZADA, PublicationStatus.DESCARTADA}),
    PublicationStatus.FINALIZADA: frozenset(),
    PublicationStatus.DESCARTADA: frozenset(),
}

# Rótulos exibidos na listagem
STATUS_LABELS = {
    PublicationStatus.NOVA: "Nova",
    PublicationStatus.PENDENTE: "Pendente",
    PublicationStatus.ATRIBUIDA: "Atribuída",
    PublicationStatus.FINALIZADA: "Finalizada",
    PublicationStatus.DESCARTADA: "Descartada",
}


def map_backend_status(raw: Any) -> PublicationStatus:
    """
    Converte os status legados gravados pelo backend (nova/novo, lido,
    atribuído, arquivado...) para o enum canônico. Desconhecido vira `nova`.
    """
    value = str(raw or "").strip().lower()
    if value in ("nova", "novo"):
        return PublicationStatus.NOVA
    if value in ("lido", "pendente"):
        return PublicationStatus.PENDENTE
    if value in ("atribuida", "atribuída", "atribuido", "atribuído"):
        return PublicationStatus.ATRIBUIDA
    if value in ("finalizada", "finalizado"):
        return PublicationStatus.FINALIZADA
    if value in ("arquivado", "arquivada", "descartada", "descartado"):
        return PublicationStatus.DESCARTADA
    return PublicationStatus.NOVA


def is_terminal(status: PublicationStatus) -> bool:
    return not PUBLICATION_TRANSITIONS[status]


def can_transition(current: PublicationStatus, target: PublicationStatus) -> bool:
    return target in PUBLICATION_TRANSITIONS[current]


def transition(current: Any, target: Any) -> PublicationStatus:
    """Valida e devolve o novo status. Transições fora da tabela levantam `InvalidTransitionError`."""
    cur = current if isinstance(current, PublicationStatus) else map_backend_status(current)
    tgt = PublicationStatus(target)
    if not can_transition(cur, tgt):
        raise InvalidTransitionError(cur.value, tgt.value)
    return tgt
