"""
Canal WebSocket de notifications par salle.
Le client se connecte avec ?room=CODE et ne reçoit que les événements de sa salle.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect, status

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Temps réel"])


@router.websocket("/ws")
async def live_channel(websocket: WebSocket, room: Optional[str] = Query(None)):
    """
    Trames envoyées par le serveur :
    - {"type": "connected" | "update" | "updateAnnouncement" | "newFile" | "deleteFile", "timestamp": ms, ...}
    - "ping" en texte brut toutes les PING_INTERVAL_SECONDS : le client répond "pong"

    Le canal ne sert qu'aux notifications ; les mutations passent par l'API HTTP.
    """
    if not room:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    bus = websocket.app.state.bus
    connection = await bus.connect(websocket, room)
    try:
        while True:
            text = await websocket.receive_text()
            bus.handle_inbound(connection, text)
    except WebSocketDisconnect:
        logger.info("WebSocket fermé par le client (salle %s)", room)
    except Exception as exc:
        logger.warning("Erreur sur le WebSocket de la salle %s : %s", room, exc)
    finally:
        await bus.disconnect(connection)
