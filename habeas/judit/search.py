import re
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from habeas.judit.errors import SearchValidationError

_NON_DIGIT_RE = re.compile(r"\D+")
_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")


class SearchType(str, Enum):
    CPF = "cpf"
    CNPJ = "cnpj"
    OAB = "oab"
    NAME = "name"
    LAWSUIT_CNJ = "lawsuit_cnj"
    LAWSUIT_ID = "lawsuit_id"


NUMERIC_TYPES = frozenset(
    {SearchType.CPF, SearchType.CNPJ, SearchType.LAWSUIT_CNJ, SearchType.LAWSUIT_ID}
)


class SearchKey(BaseModel):
    """Chave de busca já normalizada, no formato aceito pelo provedor."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: SearchType = Field(alias="search_type")
    value: str = Field(alias="search_key")

    @property
    def composite(self) -> str:
        return f"{self.type.value}:{self.value}"

    def to_wire(self, **extra: Any) -> Dict[str, Any]:
        body: Dict[str, Any] = {"search_type": self.type.value, "search_key": self.value}
        body.update({k: v for k, v in extra.items() if v is not None})
        return body


def clean_search_value(search_type: SearchType, raw: Optional[str]) -> str:
    """
    Aplica a regra de limpeza do tipo:
      • cpf / cnpj / lawsuit_cnj / lawsuit_id → apenas dígitos
      • oab → apenas letras e dígitos (número + UF)
      • name → texto livre, sem espaços nas pontas
    """
    text = raw if isinstance(raw, str) else ("" if raw is None else str(raw))
    if search_type in NUMERIC_TYPES:
        return _NON_DIGIT_RE.sub("", text)
    if search_type == SearchType.OAB:
        return _NON_ALNUM_RE.sub("", text)
    return text.strip()


def normalize_search_key(search_type: Any, raw: Optional[str]) -> SearchKey:
    try:
        st = SearchType(search_type)
    except ValueError:
        raise SearchValidationError(f"Tipo de busca desconhecido: {search_type!r}") from None

    value = clean_search_value(st, raw)
    if not value:
        raise SearchValidationError("Informe a chave de busca")
    return SearchKey(search_type=st, search_key=value)


def oab_search_key(oab_number: str, uf: str) -> SearchKey:
    """Número da OAB + UF concatenados, ex.: ('123.456', 'sp') -> '123456sp'."""
    return normalize_search_key(SearchType.OAB, f"{oab_number or ''}{uf or ''}")
