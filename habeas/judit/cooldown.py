"""
Cooldown de ações manuais (atualizar consulta, sincronizar monitoramento).

Cortesia de UX para economizar a cota paga da Judit: quem garante a cota de
verdade é o backend. O instante da tentativa é gravado ANTES da chamada de
rede, de modo que uma chamada lenta ou com falha não pode ser repetida na hora.
Os timestamps ficam num store durável (arquivo JSON por perfil ou Redis) para
sobreviver a reinícios.
"""
import json
import logging
import math
import os
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import redis

from habeas.config import settings

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_MS = 30_000

REQUEST_PREFIX = "juditCooldownReq:"
SEARCH_PREFIX = "juditCooldownKey:"
PORTAL_PREFIX = "juditCooldownPortal:"
TRACKINGS_SYNC_KEY = "trackingsSync"


def request_key(request_id: str) -> str:
    return f"{REQUEST_PREFIX}{request_id}"


def search_key(composite: str) -> str:
    return f"{SEARCH_PREFIX}{composite}"


def history_sync_key(tracking_id: str) -> str:
    return search_key(f"historySync:{tracking_id}")


def portal_key(search_type: str, key: str) -> str:
    return f"{PORTAL_PREFIX}{search_type}:{key}"


# ───── Portas ─────


class Clock(ABC):
    @abstractmethod
    def now_ms(self) -> int:
        ...


class SystemClock(Clock):
    def now_ms(self) -> int:
        return int(time.time() * 1000)


class KeyValueStore(ABC):
    """Armazenamento chave -> string, no mesmo espírito do localStorage do navegador."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...


# ───── Adaptadores ─────


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStore(KeyValueStore):
    """Um arquivo JSON por perfil de usuário. Escrita atômica (tmp + replace)."""

    def __init__(self, path: str):
        self.path = Path(os.path.expanduser(path))
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning(f"Arquivo de cooldown ilegível em {self.path}; ignorando conteúdo.")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".cooldown-", suffix=".json")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh, ensure_ascii=False)
                os.replace(tmp, self.path)
            except OSError:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise


class RedisStore(KeyValueStore):
    """Store compartilhado em Redis (cliente síncrono)."""

    def __init__(self, client: redis.Redis, namespace: str = "habeas:"):
        self.client = client
        self.namespace = namespace

    def get(self, key: str) -> Optional[str]:
        value = self.client.get(f"{self.namespace}{key}")
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def set(self, key: str, value: str) -> None:
        self.client.set(f"{self.namespace}{key}", value)


def build_store_from_settings() -> KeyValueStore:
    kind = (settings.JUDIT_COOLDOWN_STORE or "file").strip().lower()
    if kind == "redis":
        client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            socket_connect_timeout=2,
        )
        logger.info(f"Cooldown usando Redis em {settings.REDIS_HOST}:{settings.REDIS_PORT}")
        return RedisStore(client)
    if kind == "memory":
        return MemoryStore()
    return JsonFileStore(settings.JUDIT_COOLDOWN_FILE)


# ───── Limitador ─────


class CooldownLimiter:
    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        window_ms: int = DEFAULT_WINDOW_MS,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.window_ms = window_ms

    def last_attempt(self, key: str) -> int:
        """Timestamp (ms) da última tentativa; ausente ou inválido vale 0."""
        try:
            raw = self.store.get(key)
        except redis.exceptions.RedisError as e:
            logger.error(f"Erro ao ler cooldown '{key}' no Redis: {e}")
            return 0
        except OSError as e:
            logger.error(f"Erro ao ler cooldown '{key}' em arquivo: {e}")
            return 0
        if raw is None:
            return 0
        try:
            return int(float(raw))
        except (TypeError, ValueError):
            return 0

    def remaining(self, key: str) -> int:
        last = self.last_attempt(key)
        if last <= 0:
            return 0
        elapsed = self.clock.now_ms() - last
        return max(0, self.window_ms - elapsed)

    def remaining_seconds(self, key: str) -> int:
        return math.ceil(self.remaining(key) / 1000)

    def is_available(self, key: str) -> bool:
        return self.remaining(key) == 0

    def mark(self, key: str) -> None:
        """Falha ao gravar é registrada e ignorada: a ação segue sem cooldown."""
        try:
            self.store.set(key, str(self.clock.now_ms()))
        except redis.exceptions.RedisError as e:
            logger.error(f"Erro ao gravar cooldown '{key}' no Redis: {e}")
        except OSError as e:
            logger.error(f"Erro ao gravar cooldown '{key}' em arquivo: {e}")

    def try_acquire(self, key: str) -> bool:
        """Marca a tentativa e retorna True; com cooldown ativo, não marca e retorna False."""
        if not self.is_available(key):
            logger.debug(f"Cooldown ativo para '{key}' ({self.remaining(key)} ms restantes).")
            return False
        self.mark(key)
        return True

    def label(self, key: str, idle: str = "Atualizar") -> str:
        seconds = self.remaining_seconds(key)
        return f"Aguarde {seconds}s" if seconds > 0 else idle


def build_limiter_from_settings(clock: Optional[Clock] = None) -> CooldownLimiter:
    return CooldownLimiter(build_store_from_settings(), clock, settings.JUDIT_COOLDOWN_MS)
