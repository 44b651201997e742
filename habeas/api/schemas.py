import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_serializer

from habeas.publications.status import PublicationStatus


# --- Processo (detalhe derivado do conteúdo Judit) ---
class LawsuitStep(BaseModel):
    id: str = ""
    date: Optional[dt.datetime] = None
    content: str = ""

    model_config = ConfigDict(from_attributes=True)


class Lawsuit(BaseModel):
    number: str = ""
    tribunal: str = ""
    court: str = ""
    status: str = ""
    subjects: List[str] = []
    area: str = ""
    amount: Optional[Any] = None
    parties: List[Dict[str, Any]] = []
    last_step: str = ""
    last_step_date: Optional[dt.datetime] = None
    steps: List[LawsuitStep] = []

    model_config = ConfigDict(from_attributes=True)


# --- Publicações ---
class Publication(BaseModel):
    id: str
    status: PublicationStatus
    publication_date: Optional[dt.datetime] = None
    process_number: str = ""
    court: str = ""
    searched_name: str = ""
    document: str = ""
    diario: str = ""
    source: Optional[str] = None
    urgencia: str = "media"
    end_date: Optional[dt.datetime] = None
    search_type: str = ""
    search_key: str = ""
    atencao: bool = False
    tags: List[str] = []

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("publication_date", "end_date", when_used="json")
    def _ser_dt(self, value: Optional[dt.datetime]) -> Optional[str]:
        return value.isoformat() if value else None


class PublicationDetails(Publication):
    content: Optional[str] = None
    lawsuit: Optional[Lawsuit] = None


class PublicationList(BaseModel):
    publications: List[Publication]
    total: int


# --- Webhooks ---
class WebhookAck(BaseModel):
    status: str
    response_id: Optional[str] = None
    publication_id: Optional[str] = None
