"""Websocket channel: scenario test runs and live state for the copilot UI.

Frames are JSON envelopes ``{"type": <event>, "data": <payload>}``.
Inbound: ``run-tests`` (RunTestsParams), ``get-state``.
Outbound: ``response-get-state`` (CopilotState), ``update-results`` (CopilotResult), ``error``.
"""
from __future__ import annotations

import asyncio
from typing import Any, Coroutine, List, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from app import logger, planner_agent
from models import RunTestsParams, SocketMessage, WebsocketEventTypes
from scenarios import run_scenarios, state_payload

router = APIRouter(tags=["copilot"])

CONNECTIONS: Set[WebSocket] = set()


class SocketChannel:
    """Per-connection sender handed to the scenario runner."""

    def __init__(self, ws: WebSocket):
        self.ws = ws
        self.tasks: Set[asyncio.Task] = set()

    async def emit(self, event: str, data: Any) -> None:
        await self.ws.send_json({"type": event, "data": data})

    async def broadcast(self, event: str, data: Any) -> None:
        stale: List[WebSocket] = []
        for client in list(CONNECTIONS):
            try:
                await client.send_json({"type": event, "data": data})
            except Exception as e:
                logger.info("ws_broadcast_dropped_client", error=str(e))
                stale.append(client)
        for client in stale:
            CONNECTIONS.discard(client)

    def start(self, coro: Coroutine[Any, Any, Any]) -> None:
        """Run a scenario batch without blocking this connection's receive loop."""
        task = asyncio.create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self.tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("ws_run_failed", error=str(task.exception()))

    async def close(self) -> None:
        pending = list(self.tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)


async def _handle(channel: SocketChannel, message: SocketMessage) -> None:
    if message.type == WebsocketEventTypes.GET_STATE:
        await channel.emit(WebsocketEventTypes.RESPONSE_GET_STATE, state_payload())
        return

    if message.type == WebsocketEventTypes.RUN_TESTS:
        try:
            params = RunTestsParams.model_validate(message.data or {})
        except ValidationError as e:
            await channel.emit(WebsocketEventTypes.ERROR, {"event": message.type, "detail": e.errors(include_url=False, include_context=False)})
            return
        channel.start(run_scenarios(planner_agent, [params], channel))
        return

    await channel.emit(WebsocketEventTypes.ERROR, {"event": message.type, "detail": "unknown event"})


@router.websocket("/ws")
async def copilot_socket(ws: WebSocket):
    await ws.accept()
    CONNECTIONS.add(ws)
    channel = SocketChannel(ws)
    logger.info("ws_connected", clients=len(CONNECTIONS))
    try:
        while True:
            raw = await ws.receive_text()
            try:
                message = SocketMessage.model_validate_json(raw)
            except ValidationError:
                await channel.emit(WebsocketEventTypes.ERROR, {"detail": "invalid message"})
                continue
            try:
                await _handle(channel, message)
            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.error("ws_handler_failed", event=message.type, error=str(e), exc_info=True)
                await channel.emit(WebsocketEventTypes.ERROR, {"event": message.type, "detail": str(e)})
    except WebSocketDisconnect:
        pass
    finally:
        CONNECTIONS.discard(ws)
        await channel.close()
        logger.info("ws_disconnected", clients=len(CONNECTIONS))
