"""
Bidirectional event channel to the interview server.

Every frame is a JSON object whose ``type`` names the event; the remaining
fields are its payload:

    → {"type": "join_session", "sessionId": "..."}
    → {"type": "user_response", "text": "..."}
    ← {"type": "text_chunk", "chunk": "..."}
    ← {"type": "session_completed", "message": "...", "score": 82}
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Set

import websockets
from pydantic import ValidationError
from websockets.exceptions import ConnectionClosed

from interview_voice.errors import ConnectionSetupError, ProtocolError
from interview_voice.schemas.channel import INBOUND_EVENTS

logger = logging.getLogger(__name__)

DISCONNECT = "disconnect"


class ServerChannel:
    """
    Websocket client with per-event handler dispatch.

    Handlers registered with ``on()`` receive the validated event model
    (``disconnect`` handlers receive nothing). Coroutine handlers run as tasks
    scheduled in arrival order so a slow handler never blocks reading.
    """

    def __init__(self, url: str, token: Optional[str] = None, open_timeout: float = 10.0):
        self.url = url
        self.token = token
        self.open_timeout = open_timeout
        self._ws = None
        self._open = False
        self._listen_task: Optional[asyncio.Task] = None
        self._handlers: Dict[str, List[Callable[..., Any]]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._handlers.setdefault(event, []).append(handler)

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self) -> None:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        logger.info(f"Connecting to interview server at {self.url}")
        try:
            self._ws = await websockets.connect(
                self.url,
                additional_headers=headers,
                open_timeout=self.open_timeout,
            )
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            self._ws = None
            raise ConnectionSetupError(f"Could not connect to interview server: {e}") from e

        self._open = True
        self._listen_task = asyncio.create_task(self._listen())
        logger.info("Connected to interview server")

    async def emit(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        if not self.is_open:
            logger.warning(f"Channel not open, dropping outbound {event}")
            return
        payload = {"type": event, **(data or {})}
        try:
            await self._ws.send(json.dumps(payload))
        except (ConnectionClosed, OSError) as e:
            self._open = False
            raise ConnectionSetupError(
                f"Lost connection to interview server while sending {event}: {e}"
            ) from e
        logger.debug(f"Sent {event}")

    async def close(self) -> None:
        self._open = False
        listen_task = self._listen_task
        self._listen_task = None
        if listen_task is not None and not listen_task.done():
            listen_task.cancel()
            try:
                await listen_task
            except asyncio.CancelledError:
                pass

        pending = [t for t in self._tasks if t is not asyncio.current_task()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        if self._ws is not None:
            try:
                await self._ws.close()
            except Exception as e:
                logger.warning(f"Error closing server channel: {e}")
            self._ws = None
            logger.info("Server channel closed")

    async def _listen(self) -> None:
        try:
            async for raw in self._ws:
                self._dispatch(raw)
        except ConnectionClosed as e:
            logger.info(f"Server channel closed by peer: {e}")
        finally:
            self._open = False
            self._notify(DISCONNECT)

    def _dispatch(self, raw: Any) -> None:
        try:
            event_type, event = self._parse(raw)
        except ProtocolError as e:
            logger.warning(f"Dropping malformed server message: {e}")
            return
        if event is None:
            logger.debug(f"Ignoring unhandled server event: {event_type}")
            return
        self._notify(event_type, event)

    def _parse(self, raw: Any):
        if isinstance(raw, bytes):
            raise ProtocolError("Unexpected binary frame")
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ProtocolError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            raise ProtocolError("Envelope missing 'type'")

        event_type = data["type"]
        model = INBOUND_EVENTS.get(event_type)
        if model is None:
            return event_type, None
        try:
            return event_type, model.model_validate(data)
        except ValidationError as e:
            raise ProtocolError(f"Invalid {event_type} payload: {e}") from e

    def _notify(self, event_type: str, *args: Any) -> None:
        for handler in self._handlers.get(event_type, []):
            try:
                result = handler(*args)
            except Exception as e:
                logger.error(f"Handler for {event_type} failed: {e}", exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Channel handler task failed: {exc}", exc_info=exc)


__all__ = ["DISCONNECT", "ServerChannel"]
