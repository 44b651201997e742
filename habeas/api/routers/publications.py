from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from habeas.api import dependencies, schemas
from habeas.judit.errors import InvalidTransitionError
from habeas.judit.normalizer import normalize_lawsuit
from habeas.publications.derive import JUDIT_SOURCE, unwrap_judit_content
from habeas.services import publications as publication_service

router = APIRouter(
    prefix="/api/publications",
    tags=["Publications"],
)


@router.get("/", response_model=schemas.PublicationList)
def read_publications(
    status: Optional[str] = Query(default=None),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(dependencies.get_db),
):
    """Lista publicações com campos e tags derivados; as marcadas com 'Atenção' vêm primeiro."""
    rows = publication_service.list_publications(db, status=status, skip=skip, limit=limit)
    views = publication_service.sort_views([publication_service.to_view(p) for p in rows])
    return {"publications": views, "total": len(views)}


def _details(publication) -> schemas.PublicationDetails:
    view = publication_service.to_view(publication)
    lawsuit = None
    if publication.source == JUDIT_SOURCE:
        _, rd = unwrap_judit_content(publication.content)
        if rd:
            lawsuit = normalize_lawsuit(rd)
    details = schemas.PublicationDetails.model_validate(view)
    details.lawsuit = schemas.Lawsuit.model_validate(lawsuit) if lawsuit else None
    return details


@router.get("/{publication_id}", response_model=schemas.PublicationDetails)
def read_publication(publication_id: str, db: Session = Depends(dependencies.get_db)):
    """Detalhe da publicação. Abrir uma publicação `nova` a marca como `pendente`."""
    publication = publication_service.open_publication(db, publication_id)
    if publication is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    return _details(publication)


def _run_transition(action, db: Session, publication_id: str) -> schemas.PublicationDetails:
    try:
        publication = action(db, publication_id)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    if publication is None:
        raise HTTPException(status_code=404, detail="Publication not found")
    return _details(publication)


@router.post("/{publication_id}/open", response_model=schemas.PublicationDetails)
def open_publication(publication_id: str, db: Session = Depends(dependencies.get_db)):
    return _run_transition(publication_service.open_publication, db, publication_id)


@router.post("/{publication_id}/assign", response_model=schemas.PublicationDetails)
def assign_publication(publication_id: str, db: Session = Depends(dependencies.get_db)):
    """Cria a tarefa para a publicação (pendente -> atribuida)."""
    return _run_transition(publication_service.assign_task, db, publication_id)


@router.post("/{publication_id}/complete", response_model=schemas.PublicationDetails)
def complete_publication(publication_id: str, db: Session = Depends(dependencies.get_db)):
    return _run_transition(publication_service.complete_publication, db, publication_id)


@router.post("/{publication_id}/discard", response_model=schemas.PublicationDetails)
def discard_publication(publication_id: str, db: Session = Depends(dependencies.get_db)):
    return _run_transition(publication_service.discard_publication, db, publication_id)
