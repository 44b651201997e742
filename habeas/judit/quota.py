import logging
from typing import Any, Optional

from habeas.judit.client import JuditApiClient
from habeas.judit.errors import JuditError
from habeas.judit.fields import as_dict, as_int, first_of
from habeas.judit.models import QuotaSnapshot

logger = logging.getLogger(__name__)

LOADING_LABEL = "Judit carregando..."


def parse_quota(payload: Any) -> Optional[QuotaSnapshot]:
    """
    `{plan: {maxQueries}, usage: {used, remaining?, percentage?}, blocked}` -> QuotaSnapshot.
    Sem bloco `usage` nem `plan`, a resposta é considerada inválida (None).
    """
    data = as_dict(payload)
    usage = as_dict(data.get("usage"))
    plan = as_dict(data.get("plan"))
    if not usage and not plan:
        return None

    used = max(0, as_int(usage.get("used")))
    maximum = max(0, as_int(first_of(plan, ("maxQueries", "max_queries"))))
    remaining = as_int(usage.get("remaining"), max(0, maximum - used))
    percentage = as_int(
        usage.get("percentage"),
        min(100, round(used / maximum * 100)) if maximum > 0 else 0,
    )
    blocked = data.get("blocked")
    if not isinstance(blocked, bool):
        fee = first_of(plan, ("additionalQueryFee", "additional_query_fee"), 0)
        try:
            fee = float(fee)
        except (TypeError, ValueError):
            fee = 0.0
        blocked = maximum > 0 and used >= maximum and fee <= 0

    return QuotaSnapshot(
        used=used,
        max=maximum,
        blocked=blocked,
        remaining=max(0, remaining),
        percentage=max(0, percentage),
    )


async def fetch_quota(client: JuditApiClient) -> Optional[QuotaSnapshot]:
    """Somente leitura, sem cache. Falhas são registradas em debug e viram None (placeholder)."""
    try:
        payload = await client.quota()
    except JuditError as e:
        logger.debug(f"Cota Judit indisponível: {e}")
        return None
    snapshot = parse_quota(payload)
    if snapshot is None:
        logger.debug("Resposta de cota Judit sem 'usage'/'plan'; exibindo placeholder.")
    return snapshot


def quota_label(snapshot: Optional[QuotaSnapshot]) -> str:
    if snapshot is None:
        return LOADING_LABEL
    return f"Judit {snapshot.used}/{snapshot.max}"
