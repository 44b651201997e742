import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db import models
from habeas.publications import derive
from habeas.publications.status import PublicationStatus, map_backend_status, transition

logger = logging.getLogger(__name__)


def _to_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


# ───── CRUD ─────


def create_publication(
    db: Session,
    *,
    content: Optional[str] = None,
    source: Optional[str] = None,
    process_number: Optional[str] = None,
    court: Optional[str] = None,
    searched_name: Optional[str] = None,
    diario: Optional[str] = None,
    publication_date: Optional[datetime] = None,
    external_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    status: PublicationStatus = PublicationStatus.NOVA,
) -> models.Publication:
    publication = models.Publication(
        content=content,
        source=source,
        process_number=process_number,
        court=court,
        searched_name=searched_name,
        diario=diario,
        publication_date=publication_date,
        external_id=external_id,
        extra_metadata=metadata,
        status=PublicationStatus(status).value,
    )
    db.add(publication)
    db.commit()
    db.refresh(publication)
    return publication


def get_publication(db: Session, publication_id: Any) -> Optional[models.Publication]:
    pid = _to_uuid(publication_id)
    if pid is None:
        return None
    return db.query(models.Publication).filter(models.Publication.id == pid).first()


def list_publications(
    db: Session, status: Optional[str] = None, skip: int = 0, limit: int = 100
) -> List[models.Publication]:
    query = db.query(models.Publication)
    if status:
        query = query.filter(models.Publication.status == map_backend_status(status).value)
    return (
        query.order_by(desc(models.Publication.publication_date), desc(models.Publication.created_at))
        .offset(skip)
        .limit(limit)
        .all()
    )


# ───── Fluxo de status ─────


def _move(db: Session, publication_id: Any, target: PublicationStatus) -> Optional[models.Publication]:
    publication = get_publication(db, publication_id)
    if publication is None:
        return None
    publication.status = transition(publication.status, target).value
    db.commit()
    db.refresh(publication)
    logger.info(f"Publicação {publication.id} movida para '{publication.status}'.")
    return publication


def open_publication(db: Session, publication_id: Any) -> Optional[models.Publication]:
    """
    Abrir uma publicação `nova` a marca como `pendente`; nos demais status
    é no-op. Falha ao gravar não impede a abertura (apenas registrada).
    """
    publication = get_publication(db, publication_id)
    if publication is None:
        return None
    if map_backend_status(publication.status) != PublicationStatus.NOVA:
        return publication
    try:
        publication.status = PublicationStatus.PENDENTE.value
        db.commit()
        db.refresh(publication)
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Não foi possível marcar a publicação {publication_id} como pendente.")
        return get_publication(db, publication_id)
    return publication


def assign_task(db: Session, publication_id: Any) -> Optional[models.Publication]:
    return _move(db, publication_id, PublicationStatus.ATRIBUIDA)


def complete_publication(db: Session, publication_id: Any) -> Optional[models.Publication]:
    return _move(db, publication_id, PublicationStatus.FINALIZADA)


def discard_publication(db: Session, publication_id: Any) -> Optional[models.Publication]:
    return _move(db, publication_id, PublicationStatus.DESCARTADA)


# ───── Visão com campos derivados ─────


@dataclass
class PublicationView:
    id: str
    status: PublicationStatus
    publication_date: Optional[datetime]
    process_number: str
    court: str
    searched_name: str
    document: str
    diario: str
    content: Optional[str]
    source: Optional[str]
    urgencia: str
    end_date: Optional[datetime]
    search_type: str
    search_key: str
    atencao: bool
    tags: List[str] = field(default_factory=list)


def to_view(publication: models.Publication, now: Optional[datetime] = None) -> PublicationView:
    is_judit = (publication.source or "") == derive.JUDIT_SOURCE
    judit = derive.derive_from_judit_content(publication.content) if is_judit else derive.EMPTY_DERIVATION
    tags = derive.publication_tags(publication.status, judit, now)
    return PublicationView(
        id=str(publication.id),
        status=map_backend_status(publication.status),
        publication_date=publication.publication_date,
        process_number=judit.process_number or publication.process_number or "",
        court=judit.court or publication.court or "",
        searched_name=judit.searched_name or publication.searched_name or "",
        document=judit.document,
        diario=judit.diario or publication.diario or "",
        content=publication.content,
        source=publication.source,
        urgencia=publication.urgencia or "media",
        end_date=judit.end_date,
        search_type=judit.search_type,
        search_key=judit.search_key,
        atencao=tags.atencao,
        tags=tags.tags,
    )


def sort_views(views: List[PublicationView]) -> List[PublicationView]:
    """Publicações com 'Atenção' primeiro; a ordem original é mantida dentro de cada grupo."""
    return sorted(views, key=lambda v: 0 if v.atencao else 1)
