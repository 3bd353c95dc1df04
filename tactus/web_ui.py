import asyncio
import fractions
import json
import logging
import typing
import weakref

import websockets
import websockets.asyncio.server
import websockets.exceptions

logger = logging.getLogger(__name__)

class WebUI:

    """
    WebSocket broadcaster for browser-based beat indicators.

    Every beat is pushed to connected clients as a ``{"type": "beat", ...}``
    message the moment it is due.  A ``{"type": "state", ...}`` snapshot is
    sent on connect and then twice a second, without blocking the driver.
    """

    def __init__ (self, metronome: typing.Any, ws_port: int = 8765, host: str = "0.0.0.0") -> None:

        self.metronome_ref = weakref.ref(metronome)
        self.ws_port = ws_port
        self.host = host
        self._ws_server: typing.Optional[websockets.asyncio.server.Server] = None
        self._broadcast_task: typing.Optional[asyncio.Task] = None
        self._clients: typing.Set[websockets.asyncio.server.ServerConnection] = set()

    async def start (self) -> None:

        try:
            self._ws_server = await websockets.asyncio.server.serve(self._handle_client, self.host, self.ws_port)
            self._broadcast_task = asyncio.create_task(self._broadcast_loop())
            logger.info(f"Web UI beats available at ws://localhost:{self.ws_port}")
        except Exception as e:
            logger.error(f"WebSocket server error: {e}")

    async def _handle_client (self, websocket: websockets.asyncio.server.ServerConnection) -> None:

        self._clients.add(websocket)
        try:
            metronome = self.metronome_ref()
            if metronome is not None:
                await websocket.send(json.dumps(self.get_state(metronome)))
            # Incoming messages are ignored; iterate to notice the close.
            async for _message in websocket:
                pass
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self._clients.discard(websocket)

    async def _broadcast_loop (self) -> None:

        while True:
            await asyncio.sleep(0.5)

            if not self._clients:
                continue

            metronome = self.metronome_ref()
            if metronome is None:
                break

            try:
                websockets.broadcast(self._clients, json.dumps(self.get_state(metronome)))
            except Exception:
                logger.exception("Error broadcasting UI state")

    def on_beat (self, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> None:

        if not self._clients:
            return

        metronome = self.metronome_ref()
        if metronome is None:
            return

        websockets.broadcast(self._clients, json.dumps(self.beat_message(metronome, beat_index, is_accent, absolute_time)))

    @staticmethod
    def beat_message (metronome: typing.Any, beat_index: fractions.Fraction, is_accent: bool, absolute_time: float) -> typing.Dict[str, typing.Any]:

        beats = metronome.state.beats_per_measure
        return {
            "type": "beat",
            "beat": float(beat_index),
            "measure_beat": int(beat_index // 1) % beats,
            "accent": bool(is_accent),
            "time": absolute_time,
        }

    @staticmethod
    def get_state (metronome: typing.Any) -> typing.Dict[str, typing.Any]:

        state: typing.Dict[str, typing.Any] = {
            "type": "state",
            "running": metronome.running,
            "practice_time": metronome.practice_timer.formatted(),
            "polyrhythm": None,
        }
        state.update(metronome.to_preset())

        pattern = metronome.polyrhythm
        if pattern is not None:
            state["polyrhythm"] = {
                "left": pattern.left,
                "right": pattern.right,
                "hits": [[hit.left_hit, hit.right_hit] for hit in pattern.hits],
            }

        return state

    def stop (self) -> None:

        if self._broadcast_task:
            self._broadcast_task.cancel()
        if self._ws_server:
            self._ws_server.close()
            try:
                loop = asyncio.get_running_loop()
                loop.create_task(self._ws_server.wait_closed())
            except RuntimeError:
                pass
