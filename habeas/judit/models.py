import datetime as dt
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from habeas.judit.errors import InvalidTransitionError
from habeas.judit.fields import as_dict, as_int, as_json_dict, as_list, first_of, first_str, parse_datetime
from habeas.judit.search import SearchKey, SearchType, clean_search_value


# --- Máquinas de estado ---


class RequestStatus(str, Enum):
    CREATED = "created"
    PENDING = "pending"
    UPDATING = "updating"
    UPDATED = "updated"
    COMPLETED = "completed"
    FAILED = "failed"


class TrackingStatus(str, Enum):
    CREATED = "created"
    UPDATING = "updating"
    UPDATED = "updated"
    PAUSED = "paused"
    DELETED = "deleted"


REQUEST_TRANSITIONS: Mapping[RequestStatus, FrozenSet[RequestStatus]] = {
    RequestStatus.CREATED: frozenset(
        {RequestStatus.PENDING, RequestStatus.UPDATING, RequestStatus.UPDATED,
         RequestStatus.COMPLETED, RequestStatus.FAILED}
    ),
    RequestStatus.PENDING: frozenset(
        {RequestStatus.UPDATING, RequestStatus.UPDATED, RequestStatus.COMPLETED, RequestStatus.FAILED}
    ),
    # updating <-> updated se repete a cada sincronização forçada
    RequestStatus.UPDATING: frozenset(
        {RequestStatus.UPDATED, RequestStatus.COMPLETED, RequestStatus.FAILED}
    ),
    RequestStatus.UPDATED: frozenset(
        {RequestStatus.UPDATING, RequestStatus.COMPLETED, RequestStatus.FAILED}
    ),
    RequestStatus.COMPLETED: frozenset(),
    RequestStatus.FAILED: frozenset(),
}

TRACKING_TRANSITIONS: Mapping[TrackingStatus, FrozenSet[TrackingStatus]] = {
    TrackingStatus.CREATED: frozenset(
        {TrackingStatus.UPDATING, TrackingStatus.UPDATED, TrackingStatus.PAUSED, TrackingStatus.DELETED}
    ),
    TrackingStatus.UPDATING: frozenset(
        {TrackingStatus.UPDATED, TrackingStatus.PAUSED, TrackingStatus.DELETED}
    ),
    TrackingStatus.UPDATED: frozenset(
        {TrackingStatus.UPDATING, TrackingStatus.PAUSED, TrackingStatus.DELETED}
    ),
    TrackingStatus.PAUSED: frozenset(
        {TrackingStatus.UPDATING, TrackingStatus.UPDATED, TrackingStatus.DELETED}
    ),
    TrackingStatus.DELETED: frozenset(),
}


def can_transition(table: Mapping[Any, FrozenSet[Any]], current: Any, target: Any) -> bool:
    if current == target:
        return True
    return target in table.get(current, frozenset())


def check_transition(table: Mapping[Any, FrozenSet[Any]], current: Any, target: Any) -> None:
    if not can_transition(table, current, target):
        raise InvalidTransitionError(getattr(current, "value", str(current)), getattr(target, "value", str(target)))


def _coerce_enum(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value or "").strip().lower())
    except ValueError:
        return default


def _coerce_search(value: Any) -> Dict[str, Any]:
    """Aceita `{search_type, search_key}` ou o envelope `{search: {...}}` gravado pelo backend."""
    search = as_json_dict(value)
    inner = as_json_dict(search.get("search"))
    return inner or search


def search_key_from_payload(value: Any) -> Optional[SearchKey]:
    search = _coerce_search(value)
    try:
        st = SearchType(str(search.get("search_type") or "").strip().lower())
    except ValueError:
        return None
    key = clean_search_value(st, search.get("search_key"))
    if not key:
        return None
    return SearchKey(search_type=st, search_key=key)


# --- Esquemas de resposta ---


class ResponseItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    response_id: Optional[str] = None
    response_type: str = ""
    response_data: Any = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("response_id", "created_at", "updated_at", mode="before")
    @classmethod
    def _to_str(cls, v: Any) -> Optional[str]:
        if v is None or isinstance(v, (dict, list)):
            return None
        return str(v)

    @field_validator("response_type", mode="before")
    @classmethod
    def _type_to_str(cls, v: Any) -> str:
        return "" if v is None else str(v)


class RequestResult(BaseModel):
    page: int = 0
    page_count: int = 0
    all_pages_count: int = 0
    all_count: int = 0
    request_status: Optional[str] = None
    page_data: List[ResponseItem] = []

    @classmethod
    def from_payload(cls, payload: Any) -> "RequestResult":
        data = as_dict(payload)
        items = as_list(data.get("page_data")) or as_list(data.get("responses"))
        return cls(
            page=as_int(data.get("page")),
            page_count=as_int(data.get("page_count")),
            all_pages_count=as_int(data.get("all_pages_count")),
            all_count=as_int(data.get("all_count")),
            request_status=first_str(data, ("request_status", "status")) or None,
            page_data=[ResponseItem.model_validate(it) for it in items if isinstance(it, dict)],
        )


class Request(BaseModel):
    """Consulta avulsa (ou on-demand) registrada no backend."""

    id: str
    request_id: str = ""
    search: Optional[SearchKey] = None
    response_type: str = ""
    status: RequestStatus = RequestStatus.PENDING
    result: Optional[RequestResult] = None
    raw_result: Dict[str, Any] = Field(default_factory=dict, exclude=True)
    created_at: Optional[dt.datetime] = None

    @property
    def is_terminal(self) -> bool:
        return not REQUEST_TRANSITIONS[self.status]

    @property
    def effective_status(self) -> str:
        """Status exibido: o do resultado do provedor tem precedência sobre o local."""
        if self.result and self.result.request_status:
            return self.result.request_status
        return self.status.value

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Request"]:
        data = as_dict(payload)
        ident = first_str(data, ("id", "request_id"))
        if not ident:
            return None
        search = _coerce_search(data.get("search"))
        raw_result = as_json_dict(data.get("result"))
        return cls(
            id=ident,
            request_id=first_str(data, ("request_id", "id")),
            search=search_key_from_payload(search),
            response_type=first_str(search, ("response_type",)),
            status=_coerce_enum(RequestStatus, data.get("status"), RequestStatus.PENDING),
            result=RequestResult.from_payload(raw_result) if raw_result else None,
            raw_result=raw_result,
            created_at=parse_datetime(data.get("created_at")),
        )


class Tracking(BaseModel):
    """Monitoramento recorrente registrado no provedor."""

    tracking_id: str
    search: Optional[SearchKey] = None
    recurrence: int = 1
    status: TrackingStatus = TrackingStatus.CREATED
    notification_emails: List[str] = []
    step_terms: List[str] = []
    with_attachments: bool = False
    fixed_time: bool = False
    hour_range: int = 21
    last_webhook_received_at: Optional[dt.datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.status == TrackingStatus.DELETED

    @property
    def is_paused(self) -> bool:
        return self.status == TrackingStatus.PAUSED

    @classmethod
    def from_payload(cls, payload: Any) -> Optional["Tracking"]:
        data = as_dict(payload)
        ident = first_str(data, ("tracking_id", "id"))
        if not ident:
            return None
        filters = as_dict(data.get("notification_filters"))
        return cls(
            tracking_id=ident,
            search=search_key_from_payload(data.get("search")),
            recurrence=max(1, as_int(data.get("recurrence"), 1)),
            status=_coerce_enum(TrackingStatus, data.get("status"), TrackingStatus.CREATED),
            notification_emails=[str(e).strip() for e in as_list(data.get("notification_emails")) if str(e).strip()],
            step_terms=[str(t).strip() for t in as_list(filters.get("step_terms")) if str(t).strip()],
            with_attachments=bool(data.get("with_attachments")),
            fixed_time=bool(data.get("fixed_time")),
            hour_range=min(23, max(0, as_int(data.get("hour_range"), 21))),
            last_webhook_received_at=parse_datetime(data.get("last_webhook_received_at")),
        )


class HistoryPage(BaseModel):
    page: int = 1
    page_size: int = 20
    total: int = 0
    page_data: List[ResponseItem] = []

    @classmethod
    def from_payload(cls, payload: Any, page: int = 1, page_size: int = 20) -> "HistoryPage":
        data = as_dict(payload)
        items = as_list(first_of(data, ("page_data", "data", "responses")))
        return cls(
            page=as_int(data.get("page"), page),
            page_size=as_int(data.get("page_size"), page_size),
            total=as_int(first_of(data, ("total", "all_count")), len(items)),
            page_data=[ResponseItem.model_validate(it) for it in items if isinstance(it, dict)],
        )


class QuotaSnapshot(BaseModel):
    used: int = 0
    max: int = 0
    blocked: bool = False
    remaining: int = 0
    percentage: int = 0
