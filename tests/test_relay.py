"""Tests for the rendezvous relay."""

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from webtuna.relay.app import create_app
from webtuna.tunnel.protocol import CloseFrame, DataFrame, encode_frame


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


class TestPeerRegistration:
    def test_peer_receives_open(self, client):
        with client.websocket_connect("/ws/peer/KEY_1") as peer:
            assert peer.receive_text() == "OPEN"
            assert client.app.state.broker.has_peer("KEY_1")

    def test_duplicate_key_rejected(self, client):
        with client.websocket_connect("/ws/peer/KEY_1") as peer:
            assert peer.receive_text() == "OPEN"
            with client.websocket_connect("/ws/peer/KEY_1") as duplicate:
                assert duplicate.receive_text().startswith("Error:")

    def test_invalid_key_rejected(self, client):
        with client.websocket_connect("/ws/peer/bad-key!") as peer:
            assert peer.receive_text().startswith("Error:")


class TestSessions:
    def test_connect_without_peer_fails(self, client):
        with client.websocket_connect("/ws/connect/NOBODY") as connector:
            assert connector.receive_text().startswith("Error:")

    def test_unknown_session_rejected(self, client):
        with client.websocket_connect("/ws/accept/KEY_1/nope") as acceptor:
            assert acceptor.receive_text().startswith("Error:")

    def test_session_relays_frames_both_ways(self, client):
        with client.websocket_connect("/ws/peer/KEY_1") as peer:
            assert peer.receive_text() == "OPEN"

            with client.websocket_connect("/ws/connect/KEY_1") as connector:
                signal = peer.receive_text()
                assert signal.startswith("CHANNEL ")
                session_id = signal.split(" ", 1)[1]
                assert client.app.state.broker.active_sessions == 1

                with client.websocket_connect(
                    f"/ws/accept/KEY_1/{session_id}"
                ) as acceptor:
                    assert connector.receive_text() == "CONNECTED"
                    assert acceptor.receive_text() == "CONNECTED"

                    connector.send_bytes(encode_frame(DataFrame(1, b"ping")))
                    assert acceptor.receive_bytes() == encode_frame(
                        DataFrame(1, b"ping")
                    )

                    acceptor.send_bytes(encode_frame(DataFrame(1, b"pong")))
                    assert connector.receive_bytes() == encode_frame(
                        DataFrame(1, b"pong")
                    )

                    acceptor.send_bytes(encode_frame(CloseFrame(1)))
                    assert connector.receive_bytes() == encode_frame(CloseFrame(1))

                # Acceptor gone: the relay closes the connector's side
                with pytest.raises(WebSocketDisconnect):
                    connector.receive_bytes()
