import json

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from habeas.config import settings
from db.models import Base


def custom_json_serializer(*args, **kwargs) -> str:
    """Colunas JSON gravam acentos como estão (payloads da Judit vêm em português)."""
    return json.dumps(*args, ensure_ascii=False, **kwargs)


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    if url.startswith("postgresql"):
        return {"client_encoding": "utf8"}
    return {}


engine = create_engine(
    settings.DATABASE_URL,
    json_serializer=custom_json_serializer,
    connect_args=_connect_args(settings.DATABASE_URL),
)
SessionLocal = sessionmaker(autoflush=False, bind=engine)


def init_db(bind=None) -> None:
    """Cria as tabelas que ainda não existem (sem migrações)."""
    Base.metadata.create_all(bind=bind or engine)
