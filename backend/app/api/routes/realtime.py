"""
Live payment status for an order page.

The socket only forwards what the reconciler publishes on the order's
channel. Clients that connect late should call GET /payments/status first.
"""
import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from app.services.realtime import order_channel

logger = logging.getLogger(__name__)
router = APIRouter()


async def _until_disconnect(websocket: WebSocket) -> None:
    # Inbound frames are ignored; this only notices the client leaving
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/orders/{order_id}")
async def order_updates(websocket: WebSocket, order_id: int):
    hub = websocket.app.state.services.hub
    await websocket.accept()
    channel = order_channel(order_id)

    async with hub.subscribe(channel) as queue:
        watcher = asyncio.create_task(_until_disconnect(websocket))
        try:
            while True:
                getter = asyncio.create_task(queue.get())
                done, _ = await asyncio.wait({getter, watcher}, return_when=asyncio.FIRST_COMPLETED)
                if getter not in done:
                    getter.cancel()
                    break
                await websocket.send_json(getter.result())
        except WebSocketDisconnect:
            pass
        finally:
            watcher.cancel()
    logger.debug(f"[Realtime] Client left {channel}")
