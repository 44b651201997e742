from fastapi import APIRouter

from habeas.judit.client import JuditApiClient
from habeas.judit.quota import fetch_quota, quota_label

router = APIRouter(
    prefix="/api/system",
    tags=["System"],
)


@router.get("/judit-quota")
async def get_judit_quota():
    """
    Consumo atual do plano Judit. Falha na consulta não é erro:
    devolve `quota: null` e o rótulo de carregamento.
    """
    async with JuditApiClient() as client:
        quota = await fetch_quota(client)
    return {
        "quota": quota.model_dump() if quota else None,
        "label": quota_label(quota),
    }
