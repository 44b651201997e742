"""
Normalização das respostas da Judit.

O provedor devolve formatos heterogêneos (consultas avulsas, monitoramentos,
páginas de histórico entregues por webhook). Aqui tudo é convertido para
estruturas estáveis. Nenhuma função levanta exceção: um item malformado
gera um registro parcial, um payload irreconhecível gera lista vazia.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from habeas.judit.fields import (
    as_dict,
    as_list,
    dig,
    first_of,
    first_str,
    parse_datetime,
    timestamp_of,
)
from habeas.judit.sanitizer import html_to_markdownish, markdown_to_html


# ───── Tabela de aliases (auditável) ─────
RESPONSE_CONTAINERS: Tuple[str, ...] = ("responses", "result", "response_data", "data")

TIMELINE_DATE_ALIASES: Tuple[str, ...] = ("date", "event_date", "created_at", "updated_at")
TIMELINE_TITLE_ALIASES: Tuple[str, ...] = ("title", "description", "summary", "event_title")
TIMELINE_DESCRIPTION_ALIASES: Tuple[str, ...] = ("description", "summary", "details", "event_description")

STEP_CONTAINERS: Tuple[str, ...] = ("steps", "movement", "andamentos")
STEP_DATE_ALIASES: Tuple[str, ...] = ("date", "datetime", "moved_at", "updated_at", "step_date", "created_at")
STEP_CONTENT_ALIASES: Tuple[str, ...] = ("content", "summary", "status", "title")
STEP_ID_ALIASES: Tuple[str, ...] = ("id", "step_id", "code", "slug")

TRACKING_CONTAINERS: Tuple[str, ...] = ("db", "external.page_data", "external.trackings")

DEFAULT_PROCESS_STATUS = "Em Andamento"


# ───── DTOs ─────


@dataclass(frozen=True)
class TimelineEvent:
    date: Optional[datetime]
    title: str = ""
    description: str = ""

    @property
    def sort_key(self) -> float:
        return timestamp_of(self.date)


@dataclass(frozen=True)
class LastUpdate:
    date: Optional[datetime]
    detail: str
    next: str


@dataclass(frozen=True)
class LawsuitStep:
    id: str
    date: Optional[datetime]
    content: str


@dataclass(frozen=True)
class LawsuitView:
    """Visão de detalhe de um processo (tela de processo)."""

    number: str = ""
    tribunal: str = ""
    court: str = ""
    status: str = ""
    subjects: List[str] = field(default_factory=list)
    area: str = ""
    amount: Optional[Any] = None
    parties: List[Dict[str, Any]] = field(default_factory=list)
    last_step: str = ""
    last_step_date: Optional[datetime] = None
    steps: List[LawsuitStep] = field(default_factory=list)


@dataclass(frozen=True)
class ProcessSummary:
    """Linha da listagem de processos de uma busca por OAB."""

    numero: str
    cliente: str = ""
    advogado: str = ""
    vara: str = ""
    ultima_movimentacao: str = ""
    data_ultima_movimentacao: Optional[datetime] = None
    classe: str = ""
    valor: Optional[Any] = None
    status: str = DEFAULT_PROCESS_STATUS


@dataclass(frozen=True)
class HistoryLookup:
    timeline: List[TimelineEvent]
    last_update: Optional[LastUpdate]
    process_number: str = ""
    process_title: str = ""
    status: str = "pending"


# ───── Timeline ─────


def extract_response_list(payload: Any) -> List[Any]:
    """
    Primeiro array encontrado em `responses`, `result`, `response_data` ou `data`
    (nessa ordem). Um container-objeto cujo `data` é array também é aceito
    (formato devolvido pela criação de consulta).
    """
    data = as_dict(payload)
    for key in RESPONSE_CONTAINERS:
        value = data.get(key)
        if isinstance(value, list):
            return value
    for key in RESPONSE_CONTAINERS:
        nested = as_dict(data.get(key)).get("data")
        if isinstance(nested, list):
            return nested
    return []


def _unwrap(item: Any) -> Dict[str, Any]:
    inner = as_dict(item).get("response_data")
    if isinstance(inner, dict):
        return inner
    return as_dict(item)


def to_timeline_event(item: Any) -> TimelineEvent:
    data = _unwrap(item)
    return TimelineEvent(
        date=parse_datetime(first_of(data, TIMELINE_DATE_ALIASES)),
        title=first_str(data, TIMELINE_TITLE_ALIASES),
        description=first_str(data, TIMELINE_DESCRIPTION_ALIASES),
    )


def sort_timeline(events: Sequence[TimelineEvent]) -> List[TimelineEvent]:
    """Mais recente primeiro; eventos sem data (timestamp 0) vão para o fim. Ordenação estável."""
    return sorted(events, key=lambda ev: ev.sort_key, reverse=True)


def build_timeline(payload: Any) -> List[TimelineEvent]:
    return sort_timeline([to_timeline_event(item) for item in extract_response_list(payload)])


def derive_last_update(timeline: Sequence[TimelineEvent]) -> Optional[LastUpdate]:
    if not timeline:
        return None
    newest = timeline[0]
    return LastUpdate(
        date=newest.date,
        detail=newest.description or newest.title,
        next=timeline[1].title if len(timeline) > 1 else "",
    )


# ───── Detalhe de processo ─────


def _party_name(party: Any) -> str:
    return first_str(party, ("name", "document"))


def _steps_of(data: Dict[str, Any]) -> List[LawsuitStep]:
    steps: List[LawsuitStep] = []
    for raw in as_list(first_of(data, STEP_CONTAINERS)):
        if not isinstance(raw, dict):
            continue
        steps.append(
            LawsuitStep(
                id=first_str(raw, STEP_ID_ALIASES),
                date=parse_datetime(first_of(raw, STEP_DATE_ALIASES)),
                content=first_str(raw, STEP_CONTENT_ALIASES),
            )
        )
    steps.sort(key=lambda s: timestamp_of(s.date), reverse=True)
    return steps


def normalize_lawsuit(item: Any) -> LawsuitView:
    data = _unwrap(item)
    subjects = [
        first_str(s, ("name", "value")) if isinstance(s, dict) else str(s)
        for s in as_list(data.get("subjects"))
    ]
    return LawsuitView(
        number=first_str(data, ("code", "lawsuit_cnj")),
        tribunal=first_str(data, ("tribunal_acronym",)),
        court=first_str(data, ("county", "courts.0.name", "city")),
        status=first_str(data, ("status", "state")),
        subjects=[s for s in subjects if s],
        area=first_str(data, ("area",)),
        amount=data.get("amount"),
        parties=[p for p in as_list(data.get("parties")) if isinstance(p, dict)],
        last_step=first_str(data, ("last_step.content", "last_step.summary")),
        last_step_date=parse_datetime(
            first_of(data, ("last_step.date", "updated_at", "crawler.updated_at"))
        ),
        steps=_steps_of(data),
    )


# ───── Busca por OAB ─────


def normalize_search_results(payload: Any, advogado: Optional[str] = None) -> List[ProcessSummary]:
    results: List[ProcessSummary] = []
    for raw in extract_response_list(payload):
        data = _unwrap(raw)
        numero = first_str(data, ("code", "lawsuit_cnj", "id"))
        if not numero:
            continue
        parties = as_list(first_of(data, ("parties", "crawler.parties.data")))
        cover = as_dict(first_of(data, ("cover", "crawler.cover.data")))
        first_party = parties[0] if parties else {}
        results.append(
            ProcessSummary(
                numero=numero,
                cliente=_party_name(first_party),
                advogado=advogado or "",
                vara=first_str(cover, ("court_name", "court")) or first_str(data, ("tribunal",)),
                ultima_movimentacao=first_str(data, ("last_step.summary",)),
                data_ultima_movimentacao=parse_datetime(first_of(data, ("last_step.date", "updated_at"))),
                classe=first_str(data, ("classification.value",)),
                valor=data.get("amount"),
                status=first_str(data, ("status",), DEFAULT_PROCESS_STATUS),
            )
        )
    return results


# ───── Monitoramentos ─────


def extract_tracking_list(payload: Any) -> List[Dict[str, Any]]:
    """Lista de monitoramentos: registros locais (`db`) ou, na falta deles, os externos."""
    data = as_dict(payload)
    inner = data.get("data")
    if isinstance(inner, dict):
        data = inner
    for path in TRACKING_CONTAINERS:
        value = dig(data, path)
        if isinstance(value, list) and value:
            return [t for t in value if isinstance(t, dict)]
    return []


# ───── Resumo por IA ─────


def find_summary_item(result: Any) -> Optional[Dict[str, Any]]:
    """Primeiro item com `response_type == "summary"`; havendo mais de um, vale o primeiro."""
    items = as_list(as_dict(result).get("page_data")) or extract_response_list(result)
    for item in items:
        if isinstance(item, dict) and item.get("response_type") == "summary":
            return item
    return None


def summary_text(result: Any) -> str:
    item = find_summary_item(result)
    if item is None:
        return ""
    data = dig(item, "response_data.data")
    if isinstance(data, list):
        return "\n".join(str(line) for line in data if line is not None)
    if data is None:
        return ""
    return str(data)


def summary_html(result: Any) -> str:
    text = summary_text(result)
    return markdown_to_html(html_to_markdownish(text)) if text else ""


# ───── Lookup de histórico ─────


def process_identity(payload: Any) -> Tuple[str, str]:
    responses = extract_response_list(payload)
    first = _unwrap(responses[0]) if responses else {}
    return (
        first_str(first, ("lawsuit_cnj", "code")),
        first_str(first, ("subject", "title"), "Processo"),
    )


def _event_from_lookup(raw: Any) -> TimelineEvent:
    return TimelineEvent(
        date=parse_datetime(as_dict(raw).get("date")),
        title=first_str(raw, ("title",)),
        description=first_str(raw, ("description",)),
    )


def normalize_history_lookup(payload: Any) -> HistoryLookup:
    """
    Converte a resposta de `/history/lookup`. A timeline é reordenada aqui,
    sem confiar na ordem enviada pelo backend; o `lastUpdate` do backend
    tem precedência quando presente.
    """
    data = as_dict(payload)
    timeline = sort_timeline([_event_from_lookup(ev) for ev in as_list(data.get("timeline"))])

    raw_last = as_dict(data.get("lastUpdate"))
    if raw_last:
        last_update: Optional[LastUpdate] = LastUpdate(
            date=parse_datetime(raw_last.get("date")),
            detail=first_str(raw_last, ("detail",)),
            next=first_str(raw_last, ("next",)),
        )
    else:
        last_update = derive_last_update(timeline)

    return HistoryLookup(
        timeline=timeline,
        last_update=last_update,
        process_number=first_str(data, ("processNumber",)),
        process_title=first_str(data, ("processTitle",), "Processo"),
        status=first_str(data, ("status",), "pending"),
    )
