"""
Combinadores tolerantes para ler JSON de formato desconhecido.

Nenhuma função deste módulo levanta exceção: valores ausentes, de tipo
errado ou impossíveis de interpretar viram `None` / vazio.
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import dateutil.parser


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def as_json_dict(value: Any) -> Dict[str, Any]:
    """Como `as_dict`, mas aceita também JSON serializado em string (colunas de texto)."""
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except ValueError:
            return {}
    return as_dict(value)


def dig(obj: Any, path: str) -> Any:
    """Segue um caminho pontilhado ('crawler.cover.data'); índices numéricos acessam listas."""
    cur = obj
    for part in path.split("."):
        if isinstance(cur, dict):
            cur = cur.get(part)
        elif isinstance(cur, list) and part.isdigit():
            idx = int(part)
            cur = cur[idx] if idx < len(cur) else None
        else:
            return None
    return cur


def first_of(obj: Any, aliases: Iterable[str], default: Any = None) -> Any:
    """
    Retorna o primeiro alias presente e não vazio em `obj`.
    Cada alias pode ser um caminho pontilhado. Equivale a `a || b || c` do cliente web.
    """
    for alias in aliases:
        value = dig(obj, alias)
        if value is None or value == "":
            continue
        if isinstance(value, (list, dict)) and not value:
            continue
        return value
    return default


def first_str(obj: Any, aliases: Iterable[str], default: str = "") -> str:
    """Como `first_of`, mas pula aliases cujo valor é objeto ou lista."""
    for alias in aliases:
        value = dig(obj, alias)
        if value is None or value == "" or isinstance(value, (dict, list)):
            continue
        return str(value)
    return default


def as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def parse_datetime(value: Any) -> Optional[datetime]:
    """Interpreta ISO-8601 e variações comuns; epoch em ms/s também é aceito."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 10_000_000_000 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    try:
        return dateutil.parser.isoparse(value.strip())
    except (ValueError, TypeError, OverflowError):
        pass
    try:
        return dateutil.parser.parse(value.strip())
    except (ValueError, TypeError, OverflowError):
        return None


def timestamp_of(value: Optional[datetime]) -> float:
    """Chave de ordenação: datas ausentes valem 0 (época), datas ingênuas são tratadas como UTC."""
    if value is None:
        return 0.0
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    try:
        return value.timestamp()
    except (OverflowError, OSError, ValueError):
        return 0.0
