"""WhatsApp bridge message gateway."""

import json
import logging
import queue
import threading
import uuid
from collections import Counter, deque
from typing import Callable

from pubsub import pub
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect

from ..errors import GatewayError
from ..interfaces import GroupMetadata, InboundMessage, MessagingGateway

logger = logging.getLogger(__name__)

TOPIC_MESSAGE = "whatsapp.receive.text"
TOPIC_CONNECTION = "whatsapp.connection"


class _PendingRequest:
    """A request waiting for the bridge's response frame."""

    def __init__(self):
        self.event = threading.Event()
        self.response: dict = {}


class WhatsAppBridgeGateway(MessagingGateway):
    """Messaging gateway backed by a WhatsApp Web bridge process.

    The bridge owns the WhatsApp session (pairing QR, credentials,
    reconnection) and exchanges JSON frames with us over one websocket.
    Frames are read on a background thread. Incoming messages are queued
    for a single dispatch thread, so callbacks run one at a time, in
    order, and can wait on bridge requests of their own.

    The bridge reports our own sends back as messages, sometimes before
    it answers the send request. Each send carries an ID we choose, and
    own-account messages in a chat with a send in flight are held until
    that send completes, so echoes are dropped whichever frame comes first.
    """

    # How many of our own message IDs to remember for echo suppression
    SENT_ID_HISTORY = 256
    # Seconds to wait for the background threads on disconnect
    JOIN_TIMEOUT = 5.0

    def __init__(self, url: str, token: str | None = None, request_timeout: float = 30.0):
        """
        Initialize the gateway.

        Args:
            url: Websocket URL of the bridge (e.g., "ws://127.0.0.1:3001").
            token: Shared secret sent with every request, if the bridge wants one.
            request_timeout: Maximum seconds to wait for a bridge response.
        """
        self.url = url
        self.token = token
        self.request_timeout = request_timeout
        self._ws = None
        self._callbacks: list[Callable[[InboundMessage], None]] = []
        self._pending: dict[str, _PendingRequest] = {}
        self._pending_lock = threading.Lock()
        self._sent_ids: deque[str] = deque(maxlen=self.SENT_ID_HISTORY)
        self._sending: Counter[str] = Counter()
        self._held: list[InboundMessage] = []
        self._echo_lock = threading.Lock()
        self._inbox: queue.Queue[InboundMessage | None] = queue.Queue()
        self._reader_thread: threading.Thread | None = None
        self._dispatch_thread: threading.Thread | None = None

    def send_message(
        self,
        chat: str,
        text: str,
        mentions: list[str] | None = None,
        quoted: InboundMessage | None = None,
        edit: InboundMessage | None = None,
    ) -> str | None:
        """
        Send a text message through the bridge.

        Returns:
            The sent message ID as reported by the bridge, or the one we
            asked it to use.

        Raises:
            GatewayError: If not connected or the bridge fails the request.
        """
        message_id = _new_message_id()
        payload: dict = {"id": message_id, "chat": chat, "text": text}
        if mentions:
            payload["mentions"] = list(mentions)
        if quoted is not None:
            payload["quoted"] = _message_key(quoted)
        if edit is not None:
            payload["edit"] = _message_key(edit)

        with self._echo_lock:
            self._sent_ids.append(message_id)
            self._sending[chat] += 1

        try:
            result = self._request("send_message", payload)
            reported = result.get("id") if isinstance(result, dict) else None
            if reported and reported != message_id:
                with self._echo_lock:
                    self._sent_ids.append(reported)
        finally:
            self._release_held(chat)

        return reported or message_id

    def fetch_group_metadata(self, group_id: str) -> GroupMetadata:
        """
        Fetch a group's subject and participants.

        Raises:
            GatewayError: If the bridge fails the request or answers garbage.
        """
        result = self._request("group_metadata", {"chat": group_id})
        if not isinstance(result, dict):
            raise GatewayError(f"Malformed group metadata for {group_id}")
        return _parse_group(result, default_id=group_id)

    def fetch_all_groups(self) -> list[GroupMetadata]:
        """
        Fetch all groups the account participates in.

        The bridge answers with an object keyed by group ID.

        Raises:
            GatewayError: If the bridge fails the request or answers garbage.
        """
        result = self._request("groups", {})
        if not isinstance(result, dict):
            raise GatewayError("Malformed group list")
        return [
            _parse_group(group, default_id=group_id)
            for group_id, group in result.items()
            if isinstance(group, dict)
        ]

    def on_message(self, callback: Callable[[InboundMessage], None]) -> None:
        """
        Register a callback for incoming messages.

        Args:
            callback: Function to call with each InboundMessage.
        """
        self._callbacks.append(callback)

    def connect(self) -> None:
        """
        Open the websocket to the bridge and start the reader and dispatch threads.

        Raises:
            GatewayError: If the bridge cannot be reached.
        """
        try:
            self._ws = connect(self.url, open_timeout=self.request_timeout)
        except (OSError, WebSocketException) as e:
            raise GatewayError(f"Cannot connect to bridge at {self.url}: {e}") from e

        pub.subscribe(self._handle_receive, TOPIC_MESSAGE)
        pub.subscribe(self._handle_connection, TOPIC_CONNECTION)

        self._reader_thread = threading.Thread(
            target=self._read_loop, args=(self._ws,), name="bridge-reader", daemon=True
        )
        self._dispatch_thread = threading.Thread(
            target=self._dispatch_loop, name="bridge-dispatch", daemon=True
        )
        self._reader_thread.start()
        self._dispatch_thread.start()
        logger.info(f"Connected to bridge at {self.url}")

    def disconnect(self) -> None:
        """
        Close the bridge connection and stop dispatching.

        Waits for the message being handled, if any, to finish.
        """
        if not self.is_connected():
            return

        pub.unsubscribe(self._handle_receive, TOPIC_MESSAGE)
        pub.unsubscribe(self._handle_connection, TOPIC_CONNECTION)

        self._inbox.put(None)
        self._ws.close()
        self._ws = None

        for thread in (self._dispatch_thread, self._reader_thread):
            # A handler may call stop() from the dispatch thread itself
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=self.JOIN_TIMEOUT)
                if thread.is_alive():
                    logger.warning(f"{thread.name} thread did not stop in time")
        self._dispatch_thread = None
        self._reader_thread = None

    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self._ws is not None

    def _request(self, action: str, payload: dict):
        """
        Send a request frame and wait for the matching response.

        Returns:
            The "result" field of a successful response.

        Raises:
            GatewayError: On timeout, a closed connection or an error response.
        """
        if self._ws is None:
            raise GatewayError("Not connected. Call connect() first.")

        request_id = uuid.uuid4().hex
        pending = _PendingRequest()
        with self._pending_lock:
            self._pending[request_id] = pending

        frame = {
            "type": "request",
            "requestId": request_id,
            "action": action,
            "payload": payload,
        }
        if self.token:
            frame["token"] = self.token

        try:
            self._ws.send(json.dumps(frame))
            if not pending.event.wait(timeout=self.request_timeout):
                raise GatewayError(
                    f"Bridge did not answer {action} within {self.request_timeout}s"
                )
        except ConnectionClosed as e:
            raise GatewayError(f"Bridge connection closed: {e}") from e
        finally:
            with self._pending_lock:
                self._pending.pop(request_id, None)

        response = pending.response
        if not response.get("ok"):
            raise GatewayError(response.get("error") or f"Bridge rejected {action}")
        return response.get("result")

    def _read_loop(self, ws) -> None:
        """Read frames until the connection closes."""
        try:
            for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.warning(f"Bridge connection closed: {e}")
        finally:
            self._fail_pending("Bridge connection closed")

    def _dispatch_loop(self) -> None:
        """Deliver queued messages one at a time until disconnect."""
        while True:
            message = self._inbox.get()
            if message is None:
                break
            self._deliver(message)

    def _handle_frame(self, raw: str | bytes) -> None:
        """
        Route one frame from the bridge.

        Responses wake the waiting request; message and connection events
        are published on their pubsub topics.
        """
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed frame from bridge")
            return

        if not isinstance(data, dict):
            logger.warning("Ignoring non-object frame from bridge")
            return

        frame_type = data.get("type")
        payload = data.get("payload")
        if not isinstance(payload, dict):
            payload = {}

        if frame_type == "response":
            self._resolve(data.get("requestId"), payload)
        elif frame_type == "message":
            message = _parse_inbound(payload)
            if message is not None:
                pub.sendMessage(TOPIC_MESSAGE, inbound=message)
        elif frame_type == "connection":
            pub.sendMessage(TOPIC_CONNECTION, update=payload)
        else:
            logger.debug(f"Unhandled frame type: {frame_type}")

    def _handle_receive(self, inbound: InboundMessage) -> None:
        """Queue a received message, dropping echoes of our own sends."""
        with self._echo_lock:
            if inbound.id in self._sent_ids:
                logger.debug(f"Skipping echo of sent message {inbound.id}")
                return
            if inbound.from_me and self._sending[inbound.chat]:
                self._held.append(inbound)
                return
        self._inbox.put(inbound)

    def _release_held(self, chat: str) -> None:
        """Finish a send to chat and queue held messages that were not echoes."""
        with self._echo_lock:
            self._sending[chat] -= 1
            if self._sending[chat] > 0:
                return
            del self._sending[chat]

            released = [m for m in self._held if m.chat == chat]
            self._held = [m for m in self._held if m.chat != chat]
            fresh = [m for m in released if m.id not in self._sent_ids]

        for message in released:
            if message not in fresh:
                logger.debug(f"Skipping echo of sent message {message.id}")
        for message in fresh:
            self._inbox.put(message)

    def _handle_connection(self, update: dict) -> None:
        """Log connection state changes reported by the bridge."""
        status = update.get("status")
        if status == "qr":
            qr = update.get("qr", "")
            logger.info(f"QR code received, scan it from WhatsApp > Linked devices:\n{qr}")
        elif status == "open":
            logger.info("WhatsApp connection opened")
        elif status == "close":
            logger.warning(f"WhatsApp connection closed: {update.get('reason', 'unknown')}")
        else:
            logger.debug(f"Connection update: {update}")

    def _deliver(self, message: InboundMessage) -> None:
        for callback in self._callbacks:
            try:
                callback(message)
            except Exception:
                # Keep the dispatch thread alive for the next message
                logger.exception(f"[{message.sender}] Message handler failed")

    def _resolve(self, request_id: str | None, payload: dict) -> None:
        with self._pending_lock:
            pending = self._pending.get(request_id) if request_id else None
        if pending is None:
            logger.debug(f"Response for unknown request {request_id}")
            return
        pending.response = payload
        pending.event.set()

    def _fail_pending(self, reason: str) -> None:
        with self._pending_lock:
            waiting = list(self._pending.values())
        for pending in waiting:
            pending.response = {"ok": False, "error": reason}
            pending.event.set()


def _new_message_id() -> str:
    """Generate a message ID in WhatsApp Web's format."""
    return "3EB0" + uuid.uuid4().hex[:16].upper()


def _message_key(message: InboundMessage) -> dict:
    """Build the bridge's reference to an existing message."""
    return {
        "id": message.id,
        "remoteJid": message.chat,
        "participant": message.sender,
        "fromMe": message.from_me,
    }


def _parse_inbound(payload: dict) -> InboundMessage | None:
    """Build an InboundMessage from a message event, or None if it has no text."""
    text = payload.get("text")
    chat = payload.get("chat")
    if not text or not chat:
        return None

    return InboundMessage(
        id=str(payload.get("id", "")),
        chat=chat,
        sender=payload.get("sender") or chat,
        text=text,
        quoted_participant=payload.get("quotedParticipant") or None,
        from_me=bool(payload.get("fromMe", False)),
    )


def _parse_group(data: dict, default_id: str) -> GroupMetadata:
    """Build GroupMetadata from the bridge's group object.

    Participants may be plain IDs or objects with an "id" field.
    """
    participants = []
    for participant in data.get("participants") or []:
        if isinstance(participant, dict):
            participant = participant.get("id")
        if participant:
            participants.append(str(participant))

    group_id = data.get("id") or default_id
    return GroupMetadata(
        id=group_id,
        subject=data.get("subject") or group_id,
        participants=tuple(participants),
    )
