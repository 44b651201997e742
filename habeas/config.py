from __future__ import annotations

import ast
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list(value: Any) -> List[str]:
    """
    Lista de strings a partir de CSV ("600,601"), de uma lista literal
    ('["600", "601"]') ou de uma lista real. Itens vazios são descartados.
    """
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                value = ast.literal_eval(text)
            except (ValueError, SyntaxError):
                value = text.strip("[]").split(",")
        else:
            value = text.split(",")
    if not isinstance(value, (list, tuple)):
        return []
    items = (str(item).strip() for item in value)
    return [item for item in items if item]


class Settings(BaseSettings):
    """
    Configuração do núcleo Judit do Habeas Desk.
    Lida do ambiente e do arquivo `.env`; imutável depois de carregada.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ───── Runtime ─────
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: str = Field(default="INFO")

    # ───── Backend Habeas (proxy da Judit) ─────
    HABEAS_API_BASE_URL: str = "http://localhost:3000/api"
    HABEAS_API_TOKEN: str | None = None
    HABEAS_HTTP_TIMEOUT: float = 20.0

    # ───── Cooldown e alertas ─────
    JUDIT_COOLDOWN_MS: int = 30_000
    JUDIT_COOLDOWN_STORE: str = "file"  # file | redis | memory
    JUDIT_COOLDOWN_FILE: str = "~/.habeas/cooldowns.json"
    JUDIT_ATTENTION_DAYS: int = 30

    # ───── Redis (store compartilhado do cooldown) ─────
    REDIS_HOST: str = "redis"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    # ───── Banco ─────
    DATABASE_URL: str = "sqlite:///./habeas.db"

    # ───── Webhook ─────
    JUDIT_WEBHOOK_IGNORED_CODES: str = "600"

    @property
    def webhook_ignored_codes(self) -> List[str]:
        return _parse_list(self.JUDIT_WEBHOOK_IGNORED_CODES)

    @field_validator("REDIS_PORT", "REDIS_DB", "JUDIT_COOLDOWN_MS", "JUDIT_ATTENTION_DAYS", mode="before")
    @classmethod
    def _whole_number(cls, v: Any) -> int:
        """Portas, índices e janelas chegam do `.env` como texto."""
        if isinstance(v, bool):
            raise ValueError("esperado um número inteiro")
        if isinstance(v, int):
            return v
        text = str(v).strip().replace("_", "")
        if not text.isdigit():
            raise ValueError(f"esperado um número inteiro, recebido {v!r}")
        return int(text)


settings = Settings()
