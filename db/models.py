import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def as_std_uuid():
    return uuid.uuid4()


# --- Publicações ---


class Publication(Base):
    """Publicação/intimação recebida (Judit ou outra fonte) com o fluxo de tratamento."""

    __tablename__ = "publications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=as_std_uuid)
    publication_date = Column(DateTime(timezone=True), nullable=True, index=True)
    process_number = Column(String, index=True, nullable=True)
    court = Column(String, nullable=True)  # vara / comarca
    searched_name = Column(String, nullable=True)
    diario = Column(String, nullable=True)

    status = Column(String(20), index=True, nullable=False, default="nova")  # nova | pendente | ...
    urgencia = Column(String(10), nullable=False, default="media")
    content = Column(Text, nullable=True)  # JSON bruto do provedor ou texto
    source = Column(String, index=True, nullable=True)  # Ex: "Judit"
    external_id = Column(String, unique=True, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), default=func.now()
    )


# --- Judit ---


class JuditTracking(Base):
    """Espelho local do monitoramento (status conhecido e último webhook)."""

    __tablename__ = "judit_trackings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=as_std_uuid)
    tracking_id = Column(String, unique=True, index=True, nullable=False)
    search = Column(JSON, nullable=True)
    status = Column(String(20), index=True, nullable=False, default="created")
    last_webhook_received_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), onupdate=func.now(), default=func.now()
    )


class JuditTrackingHistory(Base):
    """Cada resposta entregue por webhook (uma por `response_id`)."""

    __tablename__ = "judit_tracking_history"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=as_std_uuid)
    tracking_id = Column(String, index=True, nullable=True)
    request_id = Column(String, index=True, nullable=True)
    response_id = Column(String, unique=True, nullable=False)
    response_type = Column(String, nullable=False, default="lawsuit")
    response_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_judit_history_tracking_created", "tracking_id", "created_at"),
    )
