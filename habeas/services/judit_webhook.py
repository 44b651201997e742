"""
Ingestão dos webhooks da Judit.

Cada entrega pode referenciar um monitoramento (`reference_type == "tracking"`)
ou uma consulta avulsa (`reference_type == "request"`). Para monitoramentos o
item é gravado no histórico, o status local é atualizado e uma publicação
`nova` é criada com o corpo bruto do webhook como conteúdo.
"""
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import models
from habeas.config import settings
from habeas.judit.fields import as_dict, first_of, first_str, parse_datetime
from habeas.judit.models import TRACKING_TRANSITIONS, TrackingStatus, can_transition
from habeas.publications.derive import JUDIT_SOURCE
from habeas.publications.status import PublicationStatus
from habeas.services import publications as publication_service

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "REQUEST_COMPLETED"


@dataclass(frozen=True)
class WebhookEvent:
    tracking_id: str
    request_ref_id: str
    response_id: str
    response_type: str
    response_data: Any
    created_at: datetime
    event_type: str
    new_status: TrackingStatus
    process_number: str
    search: Dict[str, Any] = field(default_factory=dict)
    explicit_response_id: bool = True


def is_ignorable(body: Any) -> bool:
    """Aviso de conclusão da consulta (código 600) não carrega dados novos."""
    rd = as_dict(as_dict(as_dict(body).get("payload")).get("response_data"))
    if rd.get("message") != COMPLETED_MESSAGE:
        return False
    return str(rd.get("code")) in settings.webhook_ignored_codes


def status_from_event(event_type: Any) -> TrackingStatus:
    kind = str(event_type or "").strip().lower()
    if kind == "response_created" or not kind:
        return TrackingStatus.UPDATED
    return TrackingStatus.UPDATING


def _fallback_response_id() -> str:
    """Entregas sem `response_id`: timestamp em ms com sufixo aleatório para não colidir."""
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def parse_webhook(body: Any) -> Optional[WebhookEvent]:
    data = as_dict(body)
    if not data or is_ignorable(data):
        return None

    reference_type = str(data.get("reference_type") or "")
    if reference_type == "tracking" and data.get("reference_id"):
        tracking_id = str(data["reference_id"])
    elif reference_type != "request":
        tracking_id = first_str(data, ("tracking_id", "id"))
    else:
        tracking_id = ""
    request_ref_id = str(data["reference_id"]) if reference_type == "request" and data.get("reference_id") else ""

    payload = as_dict(data.get("payload"))
    response_data = first_of(payload, ("response_data",)) or first_of(data, ("response_data",)) or data
    explicit_id = first_str(payload, ("response_id",)) or first_str(data, ("response_id",))
    rd = as_dict(response_data)

    return WebhookEvent(
        tracking_id=tracking_id,
        request_ref_id=request_ref_id,
        response_id=explicit_id or _fallback_response_id(),
        response_type=first_str(payload, ("response_type",)) or first_str(data, ("response_type",), "lawsuit"),
        response_data=response_data,
        created_at=parse_datetime(data.get("timestamp")) or datetime.now(timezone.utc),
        event_type=first_str(data, ("event_type",)),
        new_status=status_from_event(data.get("event_type")),
        process_number=first_str(data, ("search.search_key",)) or first_str(rd, ("lawsuit_cnj", "code")),
        search=as_dict(data.get("search")),
        explicit_response_id=bool(explicit_id),
    )


# ───── Persistência ─────


def _find_history(db: Session, response_id: str) -> Optional[models.JuditTrackingHistory]:
    return (
        db.query(models.JuditTrackingHistory)
        .filter(models.JuditTrackingHistory.response_id == response_id)
        .first()
    )


def _save_history(db: Session, event: WebhookEvent) -> models.JuditTrackingHistory:
    existing = _find_history(db, event.response_id)
    if existing:
        logger.info(f"Resposta Judit {event.response_id} já registrada; ignorando duplicata.")
        return existing
    item = models.JuditTrackingHistory(
        tracking_id=event.tracking_id or None,
        request_id=event.request_ref_id or None,
        response_id=event.response_id,
        response_type=event.response_type,
        response_data=event.response_data,
        created_at=event.created_at,
    )
    db.add(item)
    return item


def _update_tracking(db: Session, event: WebhookEvent) -> models.JuditTracking:
    tracking = (
        db.query(models.JuditTracking)
        .filter(models.JuditTracking.tracking_id == event.tracking_id)
        .first()
    )
    if tracking is None:
        tracking = models.JuditTracking(
            tracking_id=event.tracking_id,
            search=event.search or None,
            status=TrackingStatus.CREATED.value,
        )
        db.add(tracking)

    try:
        current = TrackingStatus(tracking.status)
    except ValueError:
        current = TrackingStatus.CREATED
    if can_transition(TRACKING_TRANSITIONS, current, event.new_status):
        tracking.status = event.new_status.value
    else:
        logger.warning(
            f"Webhook para monitoramento {event.tracking_id} em '{current.value}' "
            f"não altera o status para '{event.new_status.value}'."
        )
    tracking.last_webhook_received_at = datetime.now(timezone.utc)
    return tracking


def _commit(db: Session, event: WebhookEvent) -> bool:
    """False quando uma entrega concorrente já gravou a mesma resposta."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning(f"Resposta Judit {event.response_id} gravada por outra entrega; tratando como duplicata.")
        return False
    return True


def handle_judit_webhook(db: Session, body: Any) -> Dict[str, Any]:
    event = parse_webhook(body)
    if event is None:
        return {"status": "ignored"}

    _save_history(db, event)
    result: Dict[str, Any] = {"status": "received", "response_id": event.response_id}

    if not event.tracking_id:
        _commit(db, event)
        if event.request_ref_id:
            logger.info(f"Webhook Judit para consulta {event.request_ref_id} registrado.")
        return result

    _update_tracking(db, event)
    duplicate = not _commit(db, event)

    # somente monitoramentos geram publicações
    external_id = event.response_id
    existing = db.query(models.Publication).filter(models.Publication.external_id == external_id).first()
    if existing:
        result["publication_id"] = str(existing.id)
        return result
    if duplicate:
        return result

    publication = publication_service.create_publication(
        db,
        content=json.dumps(body, ensure_ascii=False),
        source=JUDIT_SOURCE,
        process_number=event.process_number or None,
        publication_date=datetime.now(timezone.utc),
        external_id=external_id,
        status=PublicationStatus.NOVA,
        metadata={
            "trackingId": event.tracking_id,
            "response_id": event.response_id if event.explicit_response_id else None,
            "response_type": event.response_type,
            "search": event.search,
            "event_type": event.event_type or None,
        },
    )
    logger.info(f"Publicação {publication.id} criada a partir do monitoramento {event.tracking_id}.")
    result["publication_id"] = str(publication.id)
    return result
