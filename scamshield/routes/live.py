"""
live.py — Live Scanner WebSocket.

Route:
  WS /api/v1/live/ws?language=en

One WebSocket = one LiveSessionEngine. The browser owns camera, microphone
and speaker; BrowserMediaBridge relays them (see scamshield.live.bridge for
the device/audio messages). On top of those, this route adds:

  browser -> server   {"type": "start"}   open the session (retry after an error too)
                      {"type": "stop"}    close it, back to idle
  server -> browser   {"type": "state", "state", "previous", "message", "code"}
                      {"type": "speaking", "speaking": true|false}
                      {"type": "notice", "detail"}

Everything outbound goes through the bridge's outbox so only one task ever
writes to the socket. Disconnecting always closes the engine, which releases
the browser's devices and the Gemini connection.
"""

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from scamshield.ai.gemini_client import GeminiClient
from scamshield.core.config import settings
from scamshield.core.errors import ScamShieldError
from scamshield.live.bridge import BrowserMediaBridge
from scamshield.live.engine import (
    LiveEvent,
    LiveSessionEngine,
    LiveSessionState,
    StateChanged,
    build_live_instruction,
)
from scamshield.models.analysis import Language
from scamshield.routes.deps import get_gemini_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/live", tags=["live"])


def _event_message(event: LiveEvent) -> dict[str, Any]:
    if isinstance(event, StateChanged):
        return {
            "type": "state",
            "state": event.state.value,
            "previous": event.previous.value,
            "message": event.message,
            "code": event.code,
        }
    return {"type": "speaking", "speaking": event.speaking}


def _collect_open_result(task: asyncio.Task) -> None:
    # Failures were already turned into an ERROR state event by the engine
    if not task.cancelled() and task.exception() is not None:
        logger.debug("Live session open failed: %s", task.exception())


@router.websocket("/ws")
async def live_scanner(
    websocket: WebSocket,
    language: Language = Language.EN,
    gemini: GeminiClient = Depends(get_gemini_client),
):
    await websocket.accept()
    bridge = BrowserMediaBridge()
    engine = LiveSessionEngine(
        gemini.connect_live,
        bridge,
        system_instruction=build_live_instruction(language),
        frame_interval=settings.live_frame_interval_s,
        jpeg_quality=settings.live_frame_jpeg_quality,
    )

    async def write_outbox() -> None:
        while True:
            await websocket.send_json(await bridge.outbox.get())

    async def forward_events() -> None:
        async for event in engine.events():
            await bridge.outbox.put(_event_message(event))

    pumps = [asyncio.create_task(write_outbox()), asyncio.create_task(forward_events())]
    opening: asyncio.Task | None = None

    try:
        while True:
            try:
                message = await websocket.receive_json()
            except (ValueError, KeyError) as exc:
                # invalid JSON or a binary frame; the socket itself is fine
                logger.warning("Ignoring undecodable live scanner message: %s", exc)
                continue
            kind = message.get("type") if isinstance(message, dict) else None
            if kind == "start":
                busy = opening is not None and not opening.done()
                if busy or engine.state not in (LiveSessionState.IDLE, LiveSessionState.ERROR):
                    await bridge.outbox.put({"type": "notice", "detail": "The live scanner is already running."})
                    continue
                opening = asyncio.create_task(engine.open())
                opening.add_done_callback(_collect_open_result)
            elif kind == "stop":
                await engine.close()
            elif kind is not None:
                try:
                    bridge.feed(message)
                except (ScamShieldError, ValueError, TypeError) as exc:
                    logger.warning("Dropping live scanner message %r: %s", kind, exc)
            else:
                logger.warning("Ignoring malformed live scanner message")
    except WebSocketDisconnect:
        logger.info("Live scanner client disconnected")
    finally:
        await engine.close()
        for pump in pumps:
            pump.cancel()
        await asyncio.gather(*pumps, return_exceptions=True)
