"""CRM webhook intake endpoint."""

import json
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crm_webhooks.core.cache.client import get_redis_client
from crm_webhooks.core.config import get_settings
from crm_webhooks.core.rate_limit import limiter
from crm_webhooks.db.session import get_db, get_session_factory
from crm_webhooks.schemas.webhook import WebhookAck
from crm_webhooks.services.webhooks.direct_processor import DirectProcessor
from crm_webhooks.services.webhooks.ingestion import WebhookIngestionService
from crm_webhooks.services.webhooks.verifier import get_webhook_verifier

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)


def _ack_response(ack: WebhookAck) -> JSONResponse:
    return JSONResponse(content=ack.model_dump(by_alias=True, exclude_none=True))


@router.post("/crm")
@limiter.limit(get_settings().RATE_LIMIT_WEBHOOK)
async def receive_crm_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db_session: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> JSONResponse:
    """
    Receive a signed CRM webhook.

    Only a missing or invalid signature is answered with 401. Every other
    outcome is acknowledged with 200 so the CRM does not retry deliveries we
    have already accepted or deliberately dropped.
    """
    settings = get_settings()
    verifier = get_webhook_verifier()

    raw_body = await request.body()
    signature = request.headers.get(settings.WEBHOOK_SIGNATURE_HEADER)

    if not signature:
        logger.warning("Webhook rejected: missing signature header")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing signature")

    if not verifier.verify_signature(raw_body, signature):
        logger.warning("Webhook rejected: invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        body = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.warning(f"Webhook body is not valid JSON: {e}")
        return _ack_response(WebhookAck(success=False, error="Invalid payload"))

    service = WebhookIngestionService(
        db_session, settings, verifier, redis_client=get_redis_client()
    )
    outcome = await service.ingest(body)
    request.state.webhook_id = outcome.ack.webhook_id

    if outcome.direct_envelope is not None:
        background_tasks.add_task(DirectProcessor(session_factory).process, outcome.direct_envelope)

    return _ack_response(outcome.ack)
