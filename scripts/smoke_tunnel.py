#!/usr/bin/env python3
"""
Manual end-to-end check of a webtuna tunnel over real websockets.

This script sets up:
1. A TCP echo server (the shared service)
2. The relay server (uvicorn, in process)
3. A sharing peer and a connecting peer for one session key

Then verifies:
- Data flows through the tunnel and comes back
- Several concurrent connections stay independent
- Closing a client connection is seen by the shared service

Usage:
    python scripts/smoke_tunnel.py [--relay-port PORT]
"""

import argparse
import asyncio
import sys

import uvicorn

from webtuna.cli.commands.connect import build_supervisor
from webtuna.config import config
from webtuna.relay.app import create_app
from webtuna.tunnel.share import ShareServer
from webtuna.utils.keys import create_id

ECHO_SERVER_PORT = 19876
RELAY_PORT = 19877
CLIENT_PORT = 19878

GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"


def log_info(msg: str) -> None:
    print(f"{CYAN}[INFO]{RESET} {msg}")


def log_ok(msg: str) -> None:
    print(f"{GREEN}[PASS]{RESET} {msg}")


def log_fail(msg: str) -> None:
    print(f"{RED}[FAIL]{RESET} {msg}")


class EchoServer:
    """TCP echo server that records how many clients hung up."""

    def __init__(self, port: int):
        self.port = port
        self.server = None
        self.disconnects = 0

    async def start(self) -> None:
        self.server = await asyncio.start_server(
            self._handle_client, "127.0.0.1", self.port
        )
        log_info(f"Echo server listening on 127.0.0.1:{self.port}")

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            while data := await reader.read(4096):
                writer.write(data)
                await writer.drain()
        except ConnectionError as e:
            log_info(f"Echo: connection error: {e}")
        finally:
            self.disconnects += 1
            writer.close()


async def wait_for_port(port: int, timeout: float = 10.0) -> None:
    """Poll until something accepts connections on the port."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        try:
            _, writer = await asyncio.open_connection("127.0.0.1", port)
        except OSError:
            if asyncio.get_running_loop().time() > deadline:
                raise
            await asyncio.sleep(0.1)
            continue
        writer.close()
        return


async def echo_roundtrip(payload: bytes) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", CLIENT_PORT)
    try:
        writer.write(payload)
        await writer.drain()
        return await asyncio.wait_for(reader.readexactly(len(payload)), timeout=5.0)
    finally:
        writer.close()


async def run_checks() -> bool:
    all_passed = True

    log_info("Test 1: Basic echo through tunnel")
    reply = await echo_roundtrip(b"Hello, Tunnel World!")
    if reply == b"Hello, Tunnel World!":
        log_ok("Test 1: Data echoed correctly")
    else:
        log_fail(f"Test 1: got {reply!r}")
        all_passed = False

    log_info("Test 2: Concurrent connections")
    payloads = [f"connection {i} ".encode() * 100 for i in range(5)]
    replies = await asyncio.gather(*(echo_roundtrip(p) for p in payloads))
    if replies == payloads:
        log_ok("Test 2: All connections echoed their own data")
    else:
        log_fail("Test 2: Replies were mixed up")
        all_passed = False

    return all_passed


async def main(relay_port: int) -> int:
    echo_server = EchoServer(ECHO_SERVER_PORT)
    await echo_server.start()

    relay = uvicorn.Server(
        uvicorn.Config(
            create_app(), host="127.0.0.1", port=relay_port, log_level="warning"
        )
    )
    relay_task = asyncio.create_task(relay.serve())
    await wait_for_port(relay_port)
    log_info(f"Relay listening on ws://127.0.0.1:{relay_port}")

    config.RELAY_URL = f"ws://127.0.0.1:{relay_port}"
    key = create_id()
    share = ShareServer(key, ECHO_SERVER_PORT)
    share_task = asyncio.create_task(share.run())
    supervisor = build_supervisor(key, CLIENT_PORT)

    # The relay rejects connectors until the share peer has registered
    await asyncio.sleep(0.5)
    supervisor.start()

    try:
        await wait_for_port(CLIENT_PORT)
        success = await run_checks()

        log_info("Test 3: Close propagates to the shared service")
        await asyncio.sleep(0.5)
        if echo_server.disconnects >= 6:
            log_ok("Test 3: Shared service saw every connection close")
        else:
            log_fail(f"Test 3: only {echo_server.disconnects} disconnects seen")
            success = False
    finally:
        log_info("Cleaning up...")
        await supervisor.stop()
        await share.stop()
        share_task.cancel()
        await asyncio.gather(share_task, return_exceptions=True)
        relay.should_exit = True
        await relay_task
        await echo_server.stop()

    print()
    if success:
        log_ok("All tests passed!")
        return 0
    log_fail("Some tests failed!")
    return 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="End-to-end tunnel check")
    parser.add_argument("--relay-port", type=int, default=RELAY_PORT)
    args = parser.parse_args()
    try:
        sys.exit(asyncio.run(main(args.relay_port)))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
