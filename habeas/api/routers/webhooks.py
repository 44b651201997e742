import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from habeas.api import dependencies, schemas
from habeas.services.judit_webhook import handle_judit_webhook

router = APIRouter(
    prefix="/webhook",
    tags=["Webhooks"],
)


@router.post("/judit", response_model=schemas.WebhookAck)
async def receive_judit_webhook(request: Request, db: Session = Depends(dependencies.get_db)):
    """
    Recebe as entregas da Judit (monitoramentos e consultas avulsas).
    Avisos de conclusão sem dados novos são ignorados.
    """
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    logging.info(f"Webhook Judit recebido: reference_type={payload.get('reference_type')}")
    return handle_judit_webhook(db, payload)
