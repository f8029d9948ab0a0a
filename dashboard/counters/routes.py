"""Counter routes: signal ingestion, queries, reset and live subscription streams."""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.requests import HTTPConnection
from fastapi.websockets import WebSocketState

from dashboard.counters.hub import Subscriber, SubscriberHub
from dashboard.counters.schemas import ResetResponse, SignalRequest, SignalResponse
from dashboard.counters.service import CounterService
from dashboard.lib.logger import get_logger
from dashboard.lib.metrics import OPS_METRICS

logger = get_logger(__name__)

router = APIRouter()


def get_counter_service(connection: HTTPConnection) -> CounterService:
    service: CounterService | None = getattr(connection.app.state, "counter_service", None)
    if service is None:
        raise RuntimeError("Counter service not configured on application state")
    return service


def get_subscriber_hub(connection: HTTPConnection) -> SubscriberHub:
    hub: SubscriberHub | None = getattr(connection.app.state, "subscriber_hub", None)
    if hub is None:
        raise RuntimeError("Subscriber hub not configured on application state")
    return hub


@router.post("/signal")
async def receive_signal(
    payload: SignalRequest,
    service: CounterService = Depends(get_counter_service),
) -> JSONResponse:
    """Increment one counter on behalf of an external service."""

    new_count = await service.record_signal(payload.type)
    return JSONResponse(SignalResponse(new_count=new_count).json_payload())


@router.get("/metrics")
async def read_metrics(service: CounterService = Depends(get_counter_service)) -> JSONResponse:
    """Current counters for consumers that cannot hold a live connection."""

    return JSONResponse(service.snapshot().as_dict())


@router.post("/reset")
async def reset_metrics(service: CounterService = Depends(get_counter_service)) -> JSONResponse:
    state = await service.reset()
    return JSONResponse(ResetResponse(metrics=state.as_dict()).model_dump(mode="json"))


@router.get("/stream")
async def stream_metrics(hub: SubscriberHub = Depends(get_subscriber_hub)) -> StreamingResponse:
    """Server-sent events carrying the same INIT/UPDATE sequence as the socket."""

    async def event_source() -> AsyncIterator[bytes]:
        messages = hub.listen()
        try:
            async for message in messages:
                yield f"data: {json.dumps(message)}\n\n".encode("utf-8")
        finally:
            # Unregister as soon as the client goes away, not at garbage collection.
            await messages.aclose()

    return StreamingResponse(event_source(), media_type="text/event-stream")


@router.websocket("/ws")
@router.websocket("/")
async def subscribe_socket(websocket: WebSocket) -> None:
    """Push INIT on connect, then UPDATE/INIT messages until either side goes away."""

    hub = get_subscriber_hub(websocket)
    settings = websocket.app.state.settings
    await websocket.accept()
    subscriber = hub.open()

    sender = asyncio.create_task(_pump(websocket, subscriber, settings.subscriber_send_timeout_seconds))
    receiver = asyncio.create_task(_drain_inbound(websocket))
    try:
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        hub.close(subscriber)
        for task in (sender, receiver):
            task.cancel()
        await asyncio.gather(sender, receiver, return_exceptions=True)
        if websocket.application_state is WebSocketState.CONNECTED and websocket.client_state is WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                pass


async def _pump(websocket: WebSocket, subscriber: Subscriber, timeout: float) -> None:
    while True:
        message = await subscriber.next_message()
        if message is None:
            return
        try:
            await asyncio.wait_for(websocket.send_json(message), timeout=timeout)
        except (TimeoutError, WebSocketDisconnect, RuntimeError, OSError) as exc:
            OPS_METRICS.increment("subscriber.dropped")
            logger.info(
                "subscriber_send_failed",
                extra={"subscriber_id": subscriber.id, "error": repr(exc)},
            )
            return


async def _drain_inbound(websocket: WebSocket) -> None:
    # Inbound payloads are ignored; only the disconnect matters.
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
