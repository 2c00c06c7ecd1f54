"""
Webhooks API Endpoints
Handles incoming callbacks from the calling provider and its task router

Every handler answers 200: a non-2xx reply makes the provider redeliver.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from dialer.api.v1.dependencies import get_callback_reconciler, get_config, get_routing_bridge
from dialer.core.config import ConfigManager
from dialer.domain.models.routing import AssignmentInstruction
from dialer.domain.services.callback_reconciler import CallbackReconciler
from dialer.domain.services.routing_bridge import RoutingBridge
from dialer.infrastructure.telephony import twiml

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

XML_MEDIA_TYPE = "text/xml"


async def _read_payload(request: Request) -> Dict[str, Any]:
    """Query parameters overlaid with the form or JSON body, whichever was sent."""
    payload: Dict[str, Any] = dict(request.query_params)
    if request.method == "GET":
        return payload

    try:
        if "application/json" in request.headers.get("content-type", ""):
            body = await request.json()
            if isinstance(body, dict):
                payload.update(body)
        else:
            form = await request.form()
            payload.update({key: value for key, value in form.items()})
    except Exception as e:
        logger.warning(f"Unreadable webhook body on {request.url.path}: {e}")

    return payload


@router.post("/voice/status")
async def voice_status(
    request: Request,
    reconciler: CallbackReconciler = Depends(get_callback_reconciler),
):
    """
    Call status callback.

    Twilio posts CallSid / CallStatus form fields; queue_id is carried on
    the callback URL.
    """
    try:
        payload = await _read_payload(request)
        reconciler.on_call_status(
            payload.get("queue_id"),
            payload.get("CallSid"),
            payload.get("CallStatus"),
        )
    except Exception as e:
        logger.error(f"Error processing status callback: {e}", exc_info=True)

    return {"ok": True}


@router.api_route("/voice/twiml", methods=["GET", "POST"])
async def voice_twiml(
    request: Request,
    config: ConfigManager = Depends(get_config),
):
    """Power-mode call-control script."""
    try:
        payload = await _read_payload(request)
        script = twiml.power_dial_script(
            payload.get("To") or payload.get("to"),
            greeting=config.get("dialer.scripts.greeting", "Please hold."),
            farewell=config.get("dialer.scripts.farewell", "Goodbye."),
            language=config.get("dialer.scripts.language"),
        )
    except Exception as e:
        logger.error(f"Error building voice script: {e}", exc_info=True)
        script = twiml.hangup_script()

    return Response(content=script, media_type=XML_MEDIA_TYPE)


@router.api_route("/parallel/twiml", methods=["GET", "POST"])
async def parallel_twiml(
    request: Request,
    bridge: RoutingBridge = Depends(get_routing_bridge),
):
    """Parallel-mode script: enqueue the answered call into the routing workflow."""
    try:
        payload = await _read_payload(request)
        script = bridge.routing_script(
            payload.get("tenant_id"),
            payload.get("campaign_id"),
            payload.get("queue_id"),
        )
    except Exception as e:
        logger.error(f"Error building parallel script: {e}", exc_info=True)
        script = twiml.hangup_script()

    return Response(content=script, media_type=XML_MEDIA_TYPE)


@router.post("/routing/assignment")
async def routing_assignment(
    request: Request,
    bridge: RoutingBridge = Depends(get_routing_bridge),
):
    """
    Task router assignment callback.

    Replies dequeue (connect the call to the reserved worker) or reject.
    """
    try:
        payload = await _read_payload(request)
        instruction = await bridge.on_assignment(
            payload.get("TaskSid"),
            payload.get("ReservationSid"),
            payload.get("WorkerSid"),
            payload.get("TaskAttributes"),
        )
    except Exception as e:
        logger.error(f"Error processing assignment callback: {e}", exc_info=True)
        instruction = AssignmentInstruction.reject()

    return JSONResponse(status_code=200, content=instruction.to_provider_dict())
