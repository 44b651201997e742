"""
Campos derivados de uma publicação de origem Judit.

O conteúdo gravado é o JSON bruto recebido do provedor; daqui saem número
do processo, vara/comarca, parte pesquisada, data de encerramento e as tags
exibidas na listagem (Atenção + Concluído / Cancelado / Em Processo).
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from habeas.config import settings
from habeas.judit.fields import as_dict, as_json_dict, as_list, first_of, first_str, parse_datetime

TAG_ATENCAO = "Atenção"
TAG_CONCLUIDO = "Concluído"
TAG_CANCELADO = "Cancelado"
TAG_EM_PROCESSO = "Em Processo"

END_DATE_ALIASES = ("end_date", "closing_date", "endAt", "deadline_date", "due_date")
JUDIT_SOURCE = "Judit"


@dataclass(frozen=True)
class JuditDerivation:
    process_number: str = ""
    court: str = ""
    searched_name: str = ""
    document: str = ""
    diario: str = ""
    end_date: Optional[datetime] = None
    search_type: str = ""
    search_key: str = ""
    base_tag: str = TAG_EM_PROCESSO


@dataclass(frozen=True)
class PublicationTags:
    main: str
    atencao: bool
    tags: List[str] = field(default_factory=list)


EMPTY_DERIVATION = JuditDerivation()


def base_tag_from_status(raw: Any) -> str:
    status = str(raw or "").lower()
    if "final" in status or "conclu" in status:
        return TAG_CONCLUIDO
    if "cancel" in status:
        return TAG_CANCELADO
    return TAG_EM_PROCESSO


def unwrap_judit_content(content: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Conteúdo gravado -> (payload, response_data). JSON inválido vira ({}, {})."""
    obj = as_json_dict(content) if not isinstance(content, dict) else content
    payload = as_dict(obj.get("payload")) or obj
    return payload, as_dict(first_of(payload, ("response_data", "result", "response")))


def derive_from_judit_content(content: Any) -> JuditDerivation:
    """Conteúdo malformado (JSON inválido, tipos inesperados) gera a derivação vazia."""
    payload, rd = unwrap_judit_content(content)
    if not payload:
        return EMPTY_DERIVATION

    parties = as_list(rd.get("parties"))
    first_party = parties[0] if parties else {}
    # o webhook traz `search` no envelope, fora de `payload`
    envelope = content if isinstance(content, dict) else as_json_dict(content)
    search = as_dict(payload.get("search")) or as_dict(envelope.get("search"))

    return JuditDerivation(
        process_number=first_str(rd, ("code", "lawsuit_cnj")),
        court=first_str(rd, ("courts.0.name", "tribunal_acronym", "tribunal")),
        searched_name=first_str(first_party, ("name", "document")),
        document=first_str(first_party, ("document",)),
        diario=first_str(rd, ("tribunal_acronym",)),
        end_date=parse_datetime(first_of(rd, END_DATE_ALIASES)),
        search_type=first_str(search, ("search_type",)),
        search_key=first_str(search, ("search_key",)),
        base_tag=base_tag_from_status(first_of(rd, ("status", "state"))),
    )


def main_tag(publication_status: Any, derivation: JuditDerivation) -> str:
    status = str(getattr(publication_status, "value", publication_status) or "").lower()
    if "final" in status:
        return TAG_CONCLUIDO
    if "descart" in status or "arquiv" in status:
        return TAG_CANCELADO
    return derivation.base_tag or TAG_EM_PROCESSO


def needs_attention(
    end_date: Optional[datetime],
    tag: str,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
) -> bool:
    """Encerramento em até N dias (ou já vencido) e processo ainda não concluído."""
    if end_date is None or tag == TAG_CONCLUIDO:
        return False
    now = now or datetime.now(timezone.utc)
    if end_date.tzinfo is None:
        end_date = end_date.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    limit = settings.JUDIT_ATTENTION_DAYS if days is None else days
    diff_days = (end_date - now).total_seconds() / 86400
    return diff_days <= limit


def publication_tags(
    publication_status: Any,
    derivation: JuditDerivation,
    now: Optional[datetime] = None,
) -> PublicationTags:
    tag = main_tag(publication_status, derivation)
    atencao = needs_attention(derivation.end_date, tag, now)
    return PublicationTags(main=tag, atencao=atencao, tags=([TAG_ATENCAO] if atencao else []) + [tag])
