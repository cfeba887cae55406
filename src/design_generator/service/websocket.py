from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from starlette.websockets import WebSocketState

from ..config import settings
from ..exceptions import DesignNotFound, GenerationFailure, ValidationFailure
from ..models.schemas import (
    ConnectPluginRequest,
    DesignSpecification,
    FetchDesignRequest,
    GenerateDesignRequest,
    ModifyDesignRequest,
    WSConnectedMessage,
    WSDesignDataMessage,
    WSDesignErrorMessage,
    WSDesignResultMessage,
    WSMessage,
    WSPluginConnectedMessage,
    WSPluginErrorMessage,
    WSPluginUpdateMessage,
    WSTypingMessage,
)
from ..utils.redis_client import DesignEventPublisher
from .generator import DesignGenerator
from .store import DesignStore

logger = logging.getLogger(settings.SERVICE_NAME + ".websocket")
router = APIRouter()

PLUGIN_GROUP = "figma-plugins"

# Older plugin builds still send the original event names.
KIND_ALIASES = {
    "figma-connect": "connect-plugin",
    "figma-request-design": "fetch-design",
}

GENERATION_ERROR_MESSAGE = "Sorry, I encountered an error while generating your design. Please try again."
MODIFICATION_ERROR_MESSAGE = "Sorry, I encountered an error while modifying your design. Please try again."
INTERNAL_ERROR_MESSAGE = "Sorry, something went wrong while handling your request. Please try again."


class ClientConnection:
    """Represents an active WebSocket client connection."""

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.connection_id = uuid.uuid4().hex
        self.client_id = (
            f"{websocket.client.host}:{websocket.client.port}"
            if websocket.client
            else f"unknown-{self.connection_id[:8]}"
        )
        self.outgoing_queue: asyncio.Queue[str] = asyncio.Queue(
            maxsize=settings.WEBSOCKET_MAX_QUEUE_SIZE
        )
        self.active: bool = True
        self.sender_task: Optional[asyncio.Task] = None
        self.queue_full_count: int = 0

    async def send_message(self, message: WSMessage) -> None:
        await self.send_json_str(message.to_json())

    async def send_json_str(self, json_str: str) -> None:
        """Puts a JSON string message onto the client's outgoing queue."""
        if not self.active:
            logger.debug(
                f"[{self.client_id}] Dropping message for closed connection {self.connection_id}."
            )
            return
        try:
            self.outgoing_queue.put_nowait(json_str)
        except asyncio.QueueFull:
            logger.warning(
                f"[{self.client_id}] Outgoing queue full for connection {self.connection_id}. Message dropped."
            )
            self.queue_full_count += 1
            if self.queue_full_count > 3:
                logger.error(f"[{self.client_id}] Disconnecting client due to persistent backpressure.")
                await self.close(code=status.WS_1011_INTERNAL_ERROR, reason="backpressure")

    async def close(self, code: int = status.WS_1000_NORMAL_CLOSURE, reason: Optional[str] = None) -> None:
        """Closes the WebSocket connection and cancels the sender task."""
        if not self.active:
            return
        self.active = False
        logger.info(f"[{self.client_id}] Closing connection {self.connection_id}. Code: {code}, Reason: {reason}")

        if self.sender_task and not self.sender_task.done() and self.sender_task is not asyncio.current_task():
            self.sender_task.cancel()
            await asyncio.gather(self.sender_task, return_exceptions=True)

        if (
            self.websocket.client_state != WebSocketState.DISCONNECTED
            and self.websocket.application_state != WebSocketState.DISCONNECTED
        ):
            try:
                await self.websocket.close(code=code, reason=reason)
            except RuntimeError as e:  # Can happen if already closed by client
                logger.debug(f"[{self.client_id}] Error closing WebSocket (likely already closed): {e}")


class ConnectionManager:
    """Tracks active connections and the broadcast groups they joined."""

    def __init__(self) -> None:
        self.active_connections: Dict[str, Any] = {}
        self.groups: Dict[str, Set[str]] = {}

    def connect(self, client) -> None:
        self.active_connections[client.connection_id] = client
        logger.info(
            f"Connection {client.connection_id} opened. Total active: {len(self.active_connections)}"
        )

    async def disconnect(self, client) -> None:
        self.active_connections.pop(client.connection_id, None)
        for members in self.groups.values():
            members.discard(client.connection_id)
        await client.close()
        logger.info(
            f"Connection {client.connection_id} closed. Total active: {len(self.active_connections)}"
        )

    def join(self, client, group: str) -> None:
        self.groups.setdefault(group, set()).add(client.connection_id)
        logger.info(f"Connection {client.connection_id} joined group '{group}'.")

    def group_size(self, group: str) -> int:
        return len(self.groups.get(group, ()))

    async def broadcast(self, message_json_str: str, exclude=None) -> int:
        """Send a message to every active connection except `exclude`. Returns the number of recipients."""
        excluded_id = exclude.connection_id if exclude is not None else None
        recipients = [
            client
            for connection_id, client in list(self.active_connections.items())
            if connection_id != excluded_id and client.active
        ]
        if not recipients:
            logger.debug("Broadcast: no other active connections.")
            return 0
        logger.debug(f"Broadcasting message to {len(recipients)} clients: {message_json_str[:100]}...")
        for client in recipients:
            await client.send_json_str(message_json_str)
        return len(recipients)


class DesignRequestRouter:
    """
    Dispatches client messages to the generator and the store, replies to the
    requester and fans results out to every other listener.

    The router keeps no state of its own; sessions and history live in the store.
    """

    def __init__(
        self,
        store: DesignStore,
        generator: DesignGenerator,
        manager: Optional[ConnectionManager] = None,
        publisher: Optional[DesignEventPublisher] = None,
    ):
        self.store = store
        self.generator = generator
        self.manager = manager if manager is not None else ConnectionManager()
        self.publisher = publisher
        self._handlers: Dict[str, Callable[[Any, Dict[str, Any]], Awaitable[None]]] = {
            "generate-design": self.handle_generate,
            "modify-design": self.handle_modify,
            "connect-plugin": self.handle_connect_plugin,
            "fetch-design": self.handle_fetch,
        }

    # --- Connection lifecycle ---
    def open_connection(self, client) -> None:
        self.store.create_session(client.connection_id)
        self.manager.connect(client)

    async def close_connection(self, client) -> None:
        self.store.destroy_session(client.connection_id)
        await self.manager.disconnect(client)

    # --- Dispatch ---
    async def dispatch(self, client, data: Any) -> None:
        if not isinstance(data, dict):
            await self._send_validation_error(client, None, "Message must be a JSON object.")
            return
        kind = data.get("kind")
        kind = KIND_ALIASES.get(kind, kind) if isinstance(kind, str) else None
        handler = self._handlers.get(kind)
        if handler is None:
            logger.warning(f"[{client.connection_id}] Received unknown message kind '{kind}'.")
            await self._send_validation_error(client, kind, f"Unknown message kind '{kind}'.")
            return

        try:
            await handler(client, {**data, "kind": kind})
        except ValidationFailure as e:
            logger.info(f"[{client.connection_id}] Rejected '{kind}' request: {e}")
            await self._send_validation_error(client, kind, str(e))
        except Exception as e:
            logger.error(f"[{client.connection_id}] Unexpected error handling '{kind}': {e}", exc_info=True)
            await self._send_error(client, kind, INTERNAL_ERROR_MESSAGE, "INTERNAL_ERROR")

    @staticmethod
    def _parse(model_cls, payload: Dict[str, Any]):
        try:
            return model_cls.model_validate(payload)
        except ValidationError as e:
            missing = ", ".join(
                ".".join(str(part) for part in err["loc"]) or "message" for err in e.errors()
            )
            raise ValidationFailure(f"Invalid or missing field(s): {missing}") from e

    async def _send_error(self, client, kind: Optional[str], message: str, error_code: str) -> None:
        # Plugin-side requests get plugin-side error events.
        if kind in ("connect-plugin", "fetch-design"):
            await client.send_message(WSPluginErrorMessage(message=message, error_code=error_code))
        else:
            await client.send_message(WSDesignErrorMessage(message=message, error_code=error_code))

    async def _send_validation_error(self, client, kind: Optional[str], message: str) -> None:
        await self._send_error(client, kind, message, ValidationFailure.error_code)

    async def _publish(self, client, event_type: str, design: DesignSpecification) -> None:
        await self.manager.broadcast(
            WSPluginUpdateMessage(type=event_type, design=design).to_json(), exclude=client
        )
        if self.publisher is not None:
            await self.publisher.publish_design_event(event_type, design)

    # --- Handlers ---
    async def handle_generate(self, client, payload: Dict[str, Any]) -> None:
        request = self._parse(GenerateDesignRequest, payload)
        await client.send_message(WSTypingMessage(is_typing=True))
        try:
            design = await self.generator.generate(request.prompt, request.design_type)
        except GenerationFailure as e:
            logger.warning(f"[{client.connection_id}] Design generation failed: {e}")
            await client.send_message(WSTypingMessage(is_typing=False))
            await client.send_message(
                WSDesignErrorMessage(message=GENERATION_ERROR_MESSAGE, error_code=e.error_code)
            )
            return

        self.store.record_design(design, client.connection_id)
        await client.send_message(WSTypingMessage(is_typing=False))
        await client.send_message(
            WSDesignResultMessage(
                kind="design-generated",
                design=design,
                message=(
                    f"I've created a {design.type} based on your description. The design includes "
                    f"{len(design.components)} components and is ready for Figma export."
                ),
            )
        )
        await self._publish(client, "new-design", design)

    async def handle_modify(self, client, payload: Dict[str, Any]) -> None:
        request = self._parse(ModifyDesignRequest, payload)
        original = self.store.get_design(request.design_id)
        if original is None:
            error = DesignNotFound(request.design_id)
            logger.info(f"[{client.connection_id}] {error}")
            await client.send_message(
                WSDesignErrorMessage(message="Original design not found.", error_code=error.error_code)
            )
            return

        await client.send_message(WSTypingMessage(is_typing=True))
        try:
            design = await self.generator.modify(
                original, request.prompt, request.modification or request.prompt
            )
        except GenerationFailure as e:
            logger.warning(f"[{client.connection_id}] Design modification failed: {e}")
            await client.send_message(WSTypingMessage(is_typing=False))
            await client.send_message(
                WSDesignErrorMessage(message=MODIFICATION_ERROR_MESSAGE, error_code=e.error_code)
            )
            return

        self.store.record_design(design, client.connection_id)
        await client.send_message(WSTypingMessage(is_typing=False))
        await client.send_message(
            WSDesignResultMessage(
                kind="design-modified",
                design=design,
                message=f'I\'ve updated your design based on your request: "{request.prompt}"',
            )
        )
        await self._publish(client, "design-modified", design)

    async def handle_connect_plugin(self, client, payload: Dict[str, Any]) -> None:
        request = self._parse(ConnectPluginRequest, payload)
        metadata = dict(request.model_extra or {})
        logger.info(f"[{client.connection_id}] Design-tool plugin connected: {metadata}")
        self.store.mark_plugin(client.connection_id, metadata)
        self.manager.join(client, PLUGIN_GROUP)
        await client.send_message(WSPluginConnectedMessage())

    async def handle_fetch(self, client, payload: Dict[str, Any]) -> None:
        request = self._parse(FetchDesignRequest, payload)
        design = self.store.get_design(request.design_id)
        if design is None:
            await client.send_message(
                WSPluginErrorMessage(message="Design not found", error_code=DesignNotFound.error_code)
            )
            return
        await client.send_message(WSDesignDataMessage(design=design))


async def _websocket_sender_task(client: ClientConnection):
    """Sends messages from the client's outgoing queue to the WebSocket."""
    try:
        while client.active:
            message_json_str = await client.outgoing_queue.get()
            try:
                await client.websocket.send_text(message_json_str)
            except Exception as e:
                # The peer is gone; the receive loop notices and cleans up.
                logger.info(f"[{client.client_id}] Could not deliver message to {client.connection_id}: {e}")
                client.active = False
                break
            finally:
                client.outgoing_queue.task_done()
    except asyncio.CancelledError:
        logger.debug(f"[{client.client_id}] Sender task cancelled for connection {client.connection_id}.")


@router.websocket(settings.WEBSOCKET_PATH)
async def websocket_endpoint(websocket: WebSocket):
    """
    Real-time design channel.
    - Each connection gets a session that lives until disconnect.
    - Messages are handled one at a time, in the order they arrive.
    - Results are also broadcast to every other open connection.
    """
    design_router: DesignRequestRouter = websocket.app.state.design_router

    await websocket.accept()
    client = ClientConnection(websocket)
    design_router.open_connection(client)
    client.sender_task = asyncio.create_task(_websocket_sender_task(client))
    await client.send_message(WSConnectedMessage(session_id=client.connection_id))

    try:
        while client.active:
            message_text = await websocket.receive_text()
            logger.debug(f"[{client.client_id}] Received message: {message_text[:100]}...")
            try:
                data = json.loads(message_text)
            except json.JSONDecodeError:
                logger.warning(f"[{client.client_id}] Received non-JSON message: {message_text[:200]}")
                await client.send_message(
                    WSDesignErrorMessage(
                        message="Message must be valid JSON.", error_code=ValidationFailure.error_code
                    )
                )
                continue
            await design_router.dispatch(client, data)
    except WebSocketDisconnect:
        logger.info(f"[{client.client_id}] WebSocket disconnected by client. Connection: {client.connection_id}")
    except Exception as e:
        logger.error(f"[{client.client_id}] Unexpected error in WebSocket endpoint: {e}", exc_info=True)
    finally:
        await design_router.close_connection(client)
