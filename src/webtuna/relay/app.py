"""
Relay FastAPI application.

The relay is the rendezvous point both tunnel ends dial out to. A sharing
peer keeps a control connection open under its key; every connector for
that key gets a fresh session which the peer accepts with a second
WebSocket. From then on the relay copies messages verbatim between the two.

Endpoints:
    /ws/peer/{key}                  Sharing peer control connection
    /ws/connect/{key}               Connector channel
    /ws/accept/{key}/{session_id}   Sharing peer channel for one session
"""

import asyncio

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from webtuna.config import config
from webtuna.relay.broker import RelayBroker
from webtuna.tunnel.channel import SIGNAL_CONNECTED
from webtuna.tunnel.share import SIGNAL_OPEN
from webtuna.utils.keys import is_valid_key
from webtuna.utils.logger import configure_logging, format_traceback, get_logger

logger = get_logger(__name__)


async def _reject(websocket: WebSocket, reason: str, code: int = 1008) -> None:
    """Send an error signal and close."""
    logger.warning(f"[Relay] {reason}")
    try:
        await websocket.send_text(f"Error: {reason}")
        await websocket.close(code=code)
    except Exception:
        pass


async def _pipe(source: WebSocket, target: WebSocket) -> None:
    """Copy messages from one side to the other until source disconnects."""
    try:
        while True:
            message = await source.receive()
            if message["type"] == "websocket.disconnect":
                break
            if message.get("bytes") is not None:
                await target.send_bytes(message["bytes"])
            elif message.get("text") is not None:
                await target.send_text(message["text"])
    except (WebSocketDisconnect, RuntimeError, OSError) as e:
        logger.debug(f"[Relay] Pipe ended: {e}")


def create_app(broker: RelayBroker | None = None) -> FastAPI:
    """Build a relay application around a broker."""
    app = FastAPI(
        title="webtuna relay",
        description="Rendezvous relay for webtuna tunnels",
        version="0.1.0",
    )
    app.state.broker = broker = broker or RelayBroker()

    @app.websocket("/ws/peer/{key}")
    async def peer_endpoint(websocket: WebSocket, key: str):
        await websocket.accept()

        if not is_valid_key(key):
            await _reject(websocket, f"Invalid key: {key!r}")
            return
        if not await broker.register_peer(key, websocket):
            await _reject(websocket, f"Key {key} already in use")
            return

        try:
            await websocket.send_text(SIGNAL_OPEN)
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
        except WebSocketDisconnect:
            pass
        finally:
            await broker.unregister_peer(key, websocket)

    @app.websocket("/ws/connect/{key}")
    async def connect_endpoint(websocket: WebSocket, key: str):
        await websocket.accept()

        if not is_valid_key(key):
            await _reject(websocket, f"Invalid key: {key!r}")
            return

        session = await broker.open_session(key)
        if session is None:
            await _reject(websocket, f"Peer {key} unavailable", code=1011)
            return

        acceptor: WebSocket | None = None
        try:
            try:
                acceptor = await asyncio.wait_for(
                    session.acceptor, timeout=config.SESSION_ACCEPT_TIMEOUT
                )
            except asyncio.TimeoutError:
                await _reject(websocket, f"Peer {key} did not accept", code=1011)
                return

            await websocket.send_text(SIGNAL_CONNECTED)
            await acceptor.send_text(SIGNAL_CONNECTED)
            logger.info(f"[Relay] Session {session.session_id} connected")

            tasks = [
                asyncio.create_task(_pipe(websocket, acceptor)),
                asyncio.create_task(_pipe(acceptor, websocket)),
            ]
            done, pending = await asyncio.wait(
                tasks, return_when=asyncio.FIRST_COMPLETED
            )
            for t in pending:
                t.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        except Exception as e:
            logger.error(f"[Relay] Session {session.session_id} failed: {e}")
            logger.debug(format_traceback(e))
        finally:
            for ws in (websocket, acceptor):
                if ws is None:
                    continue
                try:
                    await ws.close(code=1000)
                except Exception:
                    pass
            broker.close_session(session)
            logger.info(f"[Relay] Session {session.session_id} closed")

    @app.websocket("/ws/accept/{key}/{session_id}")
    async def accept_endpoint(websocket: WebSocket, key: str, session_id: str):
        await websocket.accept()

        session = broker.accept_session(key, session_id, websocket)
        if session is None:
            await _reject(websocket, f"Unknown session {session_id}")
            return

        # The connect endpoint owns the piping; keep this connection open
        await session.done.wait()

    return app


app = create_app()


def run(host: str | None = None, port: int | None = None):
    """Run the relay server using uvicorn."""
    import uvicorn

    from webtuna.models.enums import LogLevel

    configure_logging(config.LOG_LEVEL, config.LOG_FILE)

    uvicorn_level_map = {
        LogLevel.FULL: "debug",
        LogLevel.DEBUG: "debug",
        LogLevel.INFO: "info",
        LogLevel.WARNING: "warning",
    }
    uvicorn_level = uvicorn_level_map.get(config.LOG_LEVEL, "info")

    host = host or config.RELAY_BIND_IP
    port = port or config.RELAY_PORT
    logger.info(f"Starting relay server on {host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=uvicorn_level,
        log_config=None,  # Keep loguru as the only log sink
    )
