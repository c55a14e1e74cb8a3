"""API routes exposing talk-time metering."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from backend import app_context

from ..metering import MeteringError, MeteringValidationError
from ..schemas.metering import DeductTalkTimeRequest, DeductTalkTimeResponse, TalkTimeResponse
from ..services.metering import get_metering_service

logger = logging.getLogger("metering")


def _get_current_user(authorization: Optional[str] = Header(None)) -> Any:
    return app_context.get_current_user(authorization=authorization)


router = APIRouter(prefix="/metering", tags=["metering"])


@router.get("/talk-time", response_model=TalkTimeResponse)
def get_talk_time(*, current_user=Depends(_get_current_user)) -> Union[TalkTimeResponse, JSONResponse]:
    service = get_metering_service()
    try:
        balance = service.get_active_balance(str(current_user.id))
    except MeteringError as exc:
        return exc.to_response()
    return TalkTimeResponse.from_balance(balance)


async def _read_deduct_request(request: Request) -> DeductTalkTimeRequest:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MeteringValidationError("Request body must be valid JSON", code="invalid_request_body") from exc
    if not isinstance(body, dict):
        raise MeteringValidationError("Request body must be a JSON object", code="invalid_request_body")
    return DeductTalkTimeRequest.model_validate(body)


@router.post("/deduct-talk-time", response_model=DeductTalkTimeResponse)
async def deduct_talk_time(
    request: Request,
    *,
    current_user=Depends(_get_current_user),
) -> Union[DeductTalkTimeResponse, JSONResponse]:
    service = get_metering_service()
    try:
        payload = await _read_deduct_request(request)
        result = await run_in_threadpool(service.deduct, str(current_user.id), payload.seconds_to_deduct)
    except MeteringError as exc:
        if exc.status_code >= 500:
            logger.error("Talk time deduction failed for user %s: %s", current_user.id, exc.message)
        return exc.to_response()
    return DeductTalkTimeResponse.from_result(result)
