import json
import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status

from arbdesk.api.auth import decode_token, require_user
from arbdesk.api.facade import APIFacade
from arbdesk.config.settings import settings
from arbdesk.errors import ComputeFailure
from arbdesk.push.broadcaster import Broadcaster
from arbdesk.schemas.cache import RefreshEnvelope
from arbdesk.services.opportunities import METADATA, PAIRWISE, TRACKER, TRIANGULAR

logger = logging.getLogger(__name__)

router = APIRouter()
opportunities = APIRouter(prefix="/opportunities", dependencies=[Depends(require_user)])


def get_facade(request: Request) -> APIFacade:
    return request.app.state.facade


def _parse_investment(raw: str | None) -> float:
    default = settings.market.default_investment
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value != value or value <= 0 or value == float("inf"):
        return default
    return value


async def _query(facade: APIFacade, key: str, params: dict | None = None) -> RefreshEnvelope:
    try:
        return await facade.query(key, params)
    except ComputeFailure as exc:
        logger.error("No data for %s: %s", key, exc.reason)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": f"Failed to fetch {key} data."},
        ) from exc


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@opportunities.get("/tracker", response_model=RefreshEnvelope)
async def tracker_endpoint(facade: APIFacade = Depends(get_facade)) -> RefreshEnvelope:
    return await _query(facade, TRACKER)


@opportunities.get("/pairwise", response_model=RefreshEnvelope)
@opportunities.get("/pairwise/{investment}", response_model=RefreshEnvelope)
async def pairwise_endpoint(
    investment: str | None = None, facade: APIFacade = Depends(get_facade)
) -> RefreshEnvelope:
    return await _query(facade, PAIRWISE, {"investment": _parse_investment(investment)})


@opportunities.get("/triangular", response_model=RefreshEnvelope)
async def triangular_endpoint(facade: APIFacade = Depends(get_facade)) -> RefreshEnvelope:
    return await _query(facade, TRIANGULAR)


@opportunities.get("/metadata", response_model=RefreshEnvelope)
async def metadata_endpoint(facade: APIFacade = Depends(get_facade)) -> RefreshEnvelope:
    return await _query(facade, METADATA)


@router.websocket("/ws")
async def push_endpoint(websocket: WebSocket, token: str | None = None) -> None:
    if not token:
        await websocket.close(code=4001, reason="Authentication required")
        return
    try:
        decode_token(token)
    except jwt.InvalidTokenError:
        await websocket.close(code=4002, reason="Invalid token")
        return

    broadcaster: Broadcaster = websocket.app.state.broadcaster
    await websocket.accept()
    subscriber = await broadcaster.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except json.JSONDecodeError:
                continue
            if isinstance(message, dict) and message.get("type") == "pong":
                subscriber.mark_alive()
    except WebSocketDisconnect:
        pass
    finally:
        await broadcaster.disconnect(subscriber)


router.include_router(opportunities)
