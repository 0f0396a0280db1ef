"""Tests for the WhatsAppBridgeGateway module."""

import json
import threading
import time

import pytest
from unittest.mock import Mock, MagicMock, patch
from pubsub import pub

from whatsapp_tagbot.errors import GatewayError
from whatsapp_tagbot.gateway.bridge_gateway import (
    TOPIC_CONNECTION,
    TOPIC_MESSAGE,
    WhatsAppBridgeGateway,
)
from whatsapp_tagbot.interfaces import GroupMetadata, InboundMessage


def answer_with(gateway, result=None, ok=True, error=None):
    """Make the mocked websocket answer every request immediately."""

    def send(raw):
        request = json.loads(raw)
        payload = {"ok": ok}
        if ok:
            payload["result"] = result
        else:
            payload["error"] = error
        gateway._handle_frame(json.dumps({
            "type": "response",
            "requestId": request["requestId"],
            "payload": payload,
        }))

    gateway._ws.send.side_effect = send


def sent_frames(gateway):
    return [json.loads(c[0][0]) for c in gateway._ws.send.call_args_list]


@pytest.fixture
def gateway():
    """A gateway with a mocked websocket and no background threads."""
    gw = WhatsAppBridgeGateway("ws://bridge:3001", request_timeout=0.2)
    gw._ws = MagicMock()
    return gw


@pytest.fixture
def subscribed(gateway):
    """Subscribe the gateway to its pubsub topics for the test."""
    pub.subscribe(gateway._handle_receive, TOPIC_MESSAGE)
    pub.subscribe(gateway._handle_connection, TOPIC_CONNECTION)
    yield gateway
    pub.unsubscribe(gateway._handle_receive, TOPIC_MESSAGE)
    pub.unsubscribe(gateway._handle_connection, TOPIC_CONNECTION)


class TestWhatsAppBridgeGateway:
    """Tests for WhatsAppBridgeGateway."""

    def test_init(self):
        """Initialize with URL, token and timeout."""
        gw = WhatsAppBridgeGateway("ws://x:1", token="secret", request_timeout=5)
        assert gw.url == "ws://x:1"
        assert gw.token == "secret"
        assert gw.request_timeout == 5
        assert gw.is_connected() is False

    def test_on_message_registers_callback(self):
        """on_message registers callback."""
        gw = WhatsAppBridgeGateway("ws://x:1")
        callback = Mock()
        gw.on_message(callback)
        assert callback in gw._callbacks

    @patch("whatsapp_tagbot.gateway.bridge_gateway.connect")
    def test_connect_and_disconnect(self, mock_connect):
        """connect opens the websocket; disconnect closes it."""
        mock_ws = MagicMock()
        mock_ws.__iter__.return_value = iter([])
        mock_connect.return_value = mock_ws

        gw = WhatsAppBridgeGateway("ws://bridge:3001", request_timeout=7)
        gw.connect()

        mock_connect.assert_called_once_with("ws://bridge:3001", open_timeout=7)
        assert gw.is_connected() is True

        reader, dispatcher = gw._reader_thread, gw._dispatch_thread
        gw.disconnect()
        mock_ws.close.assert_called_once()
        assert gw.is_connected() is False
        assert not reader.is_alive()
        assert not dispatcher.is_alive()

    @patch("whatsapp_tagbot.gateway.bridge_gateway.connect")
    def test_disconnect_waits_for_running_handler(self, mock_connect):
        """disconnect returns only after the handler in progress finishes."""
        mock_ws = MagicMock()
        mock_ws.__iter__.return_value = iter([])
        mock_connect.return_value = mock_ws

        started = threading.Event()
        finished = []

        def slow_handler(message):
            started.set()
            time.sleep(0.2)
            finished.append(message.text)

        gw = WhatsAppBridgeGateway("ws://bridge:3001")
        gw.on_message(slow_handler)
        gw.connect()
        gw._inbox.put(InboundMessage(id="1", chat="a", sender="a", text="hi"))
        assert started.wait(timeout=2)

        gw.disconnect()

        assert finished == ["hi"]

    @patch("whatsapp_tagbot.gateway.bridge_gateway.connect")
    def test_connect_failure(self, mock_connect):
        """Unreachable bridge raises GatewayError."""
        mock_connect.side_effect = ConnectionRefusedError("refused")
        gw = WhatsAppBridgeGateway("ws://bridge:3001")
        with pytest.raises(GatewayError):
            gw.connect()
        assert gw.is_connected() is False

    def test_disconnect_when_not_connected(self):
        """Disconnect does nothing when not connected."""
        WhatsAppBridgeGateway("ws://x:1").disconnect()  # Should not raise

    def test_request_not_connected_raises(self):
        """Requests fail when not connected."""
        gw = WhatsAppBridgeGateway("ws://x:1")
        with pytest.raises(GatewayError):
            gw.send_message("1@s.whatsapp.net", "hi")

    def test_send_message(self, gateway):
        """send_message sends a request frame and returns the message ID."""
        answer_with(gateway, {"id": "MSG1"})

        message_id = gateway.send_message("1@s.whatsapp.net", "hello")

        assert message_id == "MSG1"
        frame = sent_frames(gateway)[0]
        assert frame["type"] == "request"
        assert frame["action"] == "send_message"
        payload = frame["payload"]
        assert payload["chat"] == "1@s.whatsapp.net"
        assert payload["text"] == "hello"
        assert payload["id"].startswith("3EB0")
        assert "token" not in frame

    def test_send_message_returns_own_id_when_bridge_reports_none(self, gateway):
        """Without a reported ID the ID we chose is returned."""
        answer_with(gateway, {})
        message_id = gateway.send_message("1@s.whatsapp.net", "hello")
        assert message_id == sent_frames(gateway)[0]["payload"]["id"]

    def test_send_message_with_mentions_quote_and_edit(self, gateway):
        """Mentions and message references are included in the payload."""
        answer_with(gateway, {"id": "MSG2"})
        original = InboundMessage(
            id="ABC", chat="9@g.us", sender="1@s.whatsapp.net", text="!tag", from_me=True
        )

        gateway.send_message(
            "9@g.us", "x", mentions=["1@s.whatsapp.net"], quoted=original, edit=original
        )

        payload = sent_frames(gateway)[0]["payload"]
        assert payload["mentions"] == ["1@s.whatsapp.net"]
        expected_key = {
            "id": "ABC",
            "remoteJid": "9@g.us",
            "participant": "1@s.whatsapp.net",
            "fromMe": True,
        }
        assert payload["quoted"] == expected_key
        assert payload["edit"] == expected_key

    def test_token_sent_with_requests(self, gateway):
        """The shared token is attached to every request."""
        gateway.token = "secret"
        answer_with(gateway, {"id": "M"})
        gateway.send_message("1@s.whatsapp.net", "hi")
        assert sent_frames(gateway)[0]["token"] == "secret"

    def test_error_response_raises(self, gateway):
        """An error response raises GatewayError with the bridge's reason."""
        answer_with(gateway, ok=False, error="not-authorized")
        with pytest.raises(GatewayError, match="not-authorized"):
            gateway.fetch_group_metadata("9@g.us")

    def test_request_timeout(self, gateway):
        """No response within the timeout raises GatewayError."""
        with pytest.raises(GatewayError, match="did not answer"):
            gateway.fetch_all_groups()
        assert gateway._pending == {}

    def test_fetch_group_metadata(self, gateway):
        """Participants may be IDs or objects with an id."""
        answer_with(gateway, {
            "id": "9@g.us",
            "subject": "Family",
            "participants": [{"id": "1@s.whatsapp.net", "admin": None}, "2@s.whatsapp.net"],
        })

        group = gateway.fetch_group_metadata("9@g.us")

        assert group == GroupMetadata(
            id="9@g.us",
            subject="Family",
            participants=("1@s.whatsapp.net", "2@s.whatsapp.net"),
        )
        assert sent_frames(gateway)[0]["payload"] == {"chat": "9@g.us"}

    def test_fetch_group_metadata_malformed(self, gateway):
        """A non-object result raises GatewayError."""
        answer_with(gateway, ["nope"])
        with pytest.raises(GatewayError):
            gateway.fetch_group_metadata("9@g.us")

    def test_fetch_all_groups(self, gateway):
        """Groups are read from an object keyed by group ID."""
        answer_with(gateway, {
            "1@g.us": {"id": "1@g.us", "subject": "Work", "participants": []},
            "2@g.us": {"subject": "", "participants": ["5@s.whatsapp.net"]},
        })

        groups = gateway.fetch_all_groups()

        assert {g.id: g.subject for g in groups} == {"1@g.us": "Work", "2@g.us": "2@g.us"}
        assert sent_frames(gateway)[0]["action"] == "groups"

    def test_response_for_unknown_request_ignored(self, gateway):
        """Stray responses are dropped."""
        gateway._handle_frame(json.dumps({
            "type": "response", "requestId": "nope", "payload": {"ok": True},
        }))  # Should not raise

    def test_malformed_frames_ignored(self, gateway):
        """Garbage frames are dropped."""
        gateway._handle_frame("not json")
        gateway._handle_frame("[1, 2]")
        gateway._handle_frame(json.dumps({"type": "mystery"}))

    def test_connection_closed_fails_pending_requests(self, gateway):
        """Requests waiting when the connection drops fail immediately."""
        gateway._ws.send.side_effect = lambda raw: gateway._fail_pending("closed")
        with pytest.raises(GatewayError, match="closed"):
            gateway.fetch_all_groups()

    def test_read_loop_ends_when_socket_closes(self, gateway):
        """The reader handles frames until the websocket iterator ends."""
        frames = [json.dumps({"type": "connection", "payload": {"status": "open"}})]
        gateway._read_loop(iter(frames))  # Should return


class TestInboundMessages:
    """Tests for received message handling."""

    def message_frame(self, **payload):
        base = {
            "id": "IN1",
            "chat": "9@g.us",
            "sender": "1@s.whatsapp.net",
            "text": "!tag",
        }
        base.update(payload)
        return json.dumps({"type": "message", "payload": base})

    def test_message_is_queued(self, subscribed):
        """Received text messages are queued for dispatch."""
        subscribed._handle_frame(self.message_frame(quotedParticipant="2@s.whatsapp.net"))

        message = subscribed._inbox.get_nowait()
        assert message == InboundMessage(
            id="IN1",
            chat="9@g.us",
            sender="1@s.whatsapp.net",
            text="!tag",
            quoted_participant="2@s.whatsapp.net",
            from_me=False,
        )

    def test_private_chat_sender_defaults_to_chat(self, subscribed):
        """Without a sender field the chat is the sender."""
        subscribed._handle_frame(self.message_frame(chat="1@s.whatsapp.net", sender=None))
        message = subscribed._inbox.get_nowait()
        assert message.sender == "1@s.whatsapp.net"
        assert message.is_self_chat is True

    def test_message_without_text_ignored(self, subscribed):
        """Non-text messages are ignored."""
        subscribed._handle_frame(self.message_frame(text=None))
        assert subscribed._inbox.empty()

    def test_echo_of_sent_message_ignored(self, subscribed):
        """Our own sent messages coming back are not dispatched."""
        answer_with(subscribed, {"id": "OUT1"})
        subscribed.send_message("1@s.whatsapp.net", "page 1")

        subscribed._handle_frame(self.message_frame(id="OUT1", text="page 1"))
        assert subscribed._inbox.empty()

    def test_echo_before_response_ignored(self, subscribed):
        """An echo reported before the send is answered is still dropped."""
        chat = "1@s.whatsapp.net"

        def send(raw):
            request = json.loads(raw)
            subscribed._handle_frame(self.message_frame(
                id="OUT1", chat=chat, sender=chat, text="*Hidden Mention - Page 1/2*", fromMe=True,
            ))
            subscribed._handle_frame(json.dumps({
                "type": "response",
                "requestId": request["requestId"],
                "payload": {"ok": True, "result": {"id": "OUT1"}},
            }))

        subscribed._ws.send.side_effect = send

        subscribed.send_message(chat, "*Hidden Mention - Page 1/2*")

        assert subscribed._inbox.empty()
        assert subscribed._held == []

    def test_echo_with_requested_id_ignored(self, subscribed):
        """A bridge that uses the ID we sent has its echo dropped at once."""
        chat = "1@s.whatsapp.net"

        def send(raw):
            request = json.loads(raw)
            subscribed._handle_frame(self.message_frame(
                id=request["payload"]["id"], chat=chat, sender=chat, text="hi", fromMe=True,
            ))
            subscribed._handle_frame(json.dumps({
                "type": "response",
                "requestId": request["requestId"],
                "payload": {"ok": True, "result": {}},
            }))

        subscribed._ws.send.side_effect = send

        subscribed.send_message(chat, "hi")

        assert subscribed._inbox.empty()

    def test_own_message_during_send_delivered_after(self, subscribed):
        """A real own-account message held during a send is queued once it completes."""
        chat = "1@s.whatsapp.net"

        def send(raw):
            request = json.loads(raw)
            subscribed._handle_frame(self.message_frame(
                id="TYPED", chat=chat, sender=chat, text="n", fromMe=True,
            ))
            assert subscribed._inbox.empty()
            subscribed._handle_frame(json.dumps({
                "type": "response",
                "requestId": request["requestId"],
                "payload": {"ok": True, "result": {"id": "OUT1"}},
            }))

        subscribed._ws.send.side_effect = send

        subscribed.send_message(chat, "page 1")

        assert subscribed._inbox.get_nowait().text == "n"
        assert subscribed._sending == {}

    def test_held_messages_released_when_send_fails(self, subscribed):
        """A failed send still releases held messages."""
        chat = "1@s.whatsapp.net"

        def send(raw):
            request = json.loads(raw)
            subscribed._handle_frame(self.message_frame(
                id="TYPED", chat=chat, sender=chat, text="c", fromMe=True,
            ))
            subscribed._handle_frame(json.dumps({
                "type": "response",
                "requestId": request["requestId"],
                "payload": {"ok": False, "error": "rate-overlimit"},
            }))

        subscribed._ws.send.side_effect = send

        with pytest.raises(GatewayError):
            subscribed.send_message(chat, "page 1")

        assert subscribed._inbox.get_nowait().text == "c"

    def test_own_message_in_other_chat_not_held(self, subscribed):
        """Only the chat being sent to holds own-account messages."""
        def send(raw):
            request = json.loads(raw)
            subscribed._handle_frame(self.message_frame(id="X", chat="9@g.us", fromMe=True))
            assert subscribed._inbox.get_nowait().id == "X"
            subscribed._handle_frame(json.dumps({
                "type": "response",
                "requestId": request["requestId"],
                "payload": {"ok": True, "result": {"id": "OUT1"}},
            }))

        subscribed._ws.send.side_effect = send

        subscribed.send_message("1@s.whatsapp.net", "page 1")

    def test_connection_updates_logged(self, subscribed, caplog):
        """QR codes from the bridge are logged for the operator."""
        with caplog.at_level("INFO"):
            subscribed._handle_frame(json.dumps({
                "type": "connection", "payload": {"status": "qr", "qr": "2@abc"},
            }))
        assert "2@abc" in caplog.text

    def test_deliver_calls_all_callbacks(self, gateway):
        """All registered callbacks receive each message."""
        cb1, cb2 = Mock(), Mock()
        gateway.on_message(cb1)
        gateway.on_message(cb2)
        message = InboundMessage(id="1", chat="a", sender="a", text="hi")

        gateway._deliver(message)

        cb1.assert_called_once_with(message)
        cb2.assert_called_once_with(message)

    def test_callback_failure_does_not_stop_others(self, gateway):
        """A failing callback is logged and the next one still runs."""
        failing = Mock(side_effect=RuntimeError("boom"))
        ok = Mock()
        gateway.on_message(failing)
        gateway.on_message(ok)

        gateway._deliver(InboundMessage(id="1", chat="a", sender="a", text="hi"))

        ok.assert_called_once()

    def test_dispatch_loop_processes_in_order(self, gateway):
        """Queued messages are delivered in order until the stop marker."""
        received = []
        gateway.on_message(lambda m: received.append(m.text))
        for text in ["one", "two", "three"]:
            gateway._inbox.put(InboundMessage(id=text, chat="a", sender="a", text=text))
        gateway._inbox.put(None)

        gateway._dispatch_loop()

        assert received == ["one", "two", "three"]
