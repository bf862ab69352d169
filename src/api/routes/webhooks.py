"""Webhook API routes for external service integrations."""

import json
import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from src.api.deps import Reconciler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/mercadopago",
    status_code=status.HTTP_200_OK,
    summary="Handle Mercado Pago notifications",
    description="Receives payment notifications. Always acknowledges so the gateway does not retry.",
)
async def mercadopago_webhook(request: Request, reconciler: Reconciler) -> JSONResponse:
    """Handle Mercado Pago payment notifications.

    Approved payments are recorded as orders. Processing failures are
    logged and still acknowledged with 200 to avoid retry storms; only a
    body that is not JSON at all gets a 500.

    Legacy notifications that carry ``type``/``topic`` and ``data.id`` in
    the query string instead of the body are accepted too.

    Args:
        request: FastAPI request object for reading the raw body.
        reconciler: Webhook reconciler.

    Returns:
        JSONResponse: ``{"received": true}`` acknowledgement.
    """
    raw_body = await request.body()

    try:
        payload = json.loads(raw_body) if raw_body else {}
    except json.JSONDecodeError as e:
        logger.error("Webhook body is not valid JSON: %s", str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Error processing webhook"},
        )

    if isinstance(payload, dict) and "data" not in payload and "data.id" in request.query_params:
        payload = {
            "type": request.query_params.get("type") or request.query_params.get("topic"),
            "data": {"id": request.query_params["data.id"]},
        }

    outcome = await reconciler.handle_notification(payload)
    logger.info("Processed webhook notification: %s", outcome.value)

    # Always return 200 OK to acknowledge receipt (idempotent)
    return JSONResponse(status_code=status.HTTP_200_OK, content={"received": True})
