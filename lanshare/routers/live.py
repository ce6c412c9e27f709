import asyncio
import logging

from fastapi import APIRouter, WebSocket

from lanshare.services.broadcast import BroadcastChannel, Subscription

logger = logging.getLogger("lanshare.live")

router = APIRouter(tags=["Live updates"])


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    while True:
        event = await subscription.next_event()
        await websocket.send_json(event.to_message())


@router.websocket("/ws")
async def live_updates(websocket: WebSocket):
    """Push fileUploaded / fileDeleted events until the viewer disconnects."""
    channel: BroadcastChannel = websocket.app.state.broadcast
    # Subscribe before the handshake completes so no event after it is missed.
    subscription = channel.subscribe()
    sender = None
    try:
        await websocket.accept()
        client = websocket.client.host if websocket.client else "unknown"
        logger.info("Viewer connected: %s (%s)", subscription.id, client)
        sender = asyncio.create_task(_forward_events(websocket, subscription))
        # Viewers never send anything meaningful; reading only detects disconnects.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    finally:
        channel.unsubscribe(subscription)
        if sender is not None:
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("Delivery to viewer %s failed", subscription.id, exc_info=True)
        logger.info("Viewer disconnected: %s", subscription.id)
