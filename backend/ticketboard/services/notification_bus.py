"""
Bus de notifications temps réel (WebSocket) par salle.

Chaque connexion suit la machine d'état CONNECTING → OPEN → CLOSED.
Les trames sortantes passent par une file bornée vidée par une tâche dédiée :
un client lent ou mort n'impacte jamais les autres clients de la salle.

Les services métier sont synchrones (threadpool FastAPI, thread APScheduler) :
ils passent par publish(), qui reprogramme la diffusion sur la boucle asyncio.
"""

import asyncio
import enum
import logging
import time
from typing import Any, Dict, Optional, Set

from fastapi import Request, WebSocket

from ticketboard.config import settings

logger = logging.getLogger(__name__)

PING_FRAME = "ping"
PONG_FRAME = "pong"


class ConnectionState(str, enum.Enum):
    CONNECTING = "CONNECTING"
    OPEN = "OPEN"
    CLOSED = "CLOSED"


class Connection:
    """Une connexion WebSocket abonnée à une seule salle pour toute sa durée de vie."""

    def __init__(self, websocket: WebSocket, room_code: str, queue_size: int):
        self.websocket = websocket
        self.room_code = room_code
        self.state = ConnectionState.CONNECTING
        self.alive = True  # A répondu au dernier ping
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.sender: Optional[asyncio.Task] = None

    def enqueue(self, frame: Any) -> bool:
        """Dépose une trame dans la file sortante. False si la connexion est fermée ou saturée."""
        if self.state is not ConnectionState.OPEN:
            return False
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            return False
        return True

    async def close(self, code: int = 1000) -> None:
        if self.state is ConnectionState.CLOSED and self.sender is None:
            return
        self.state = ConnectionState.CLOSED
        if self.sender is not None and self.sender is not asyncio.current_task():
            self.sender.cancel()
        self.sender = None
        try:
            await self.websocket.close(code=code)
        except Exception as exc:
            # Socket déjà fermé côté client ou transport coupé
            logger.debug("Fermeture WebSocket ignorée (salle %s) : %s", self.room_code, exc)


class NotificationBus:
    """Registre des connexions vivantes, indexé par code de salle."""

    def __init__(
        self,
        ping_interval: float = settings.PING_INTERVAL_SECONDS,
        queue_size: int = settings.WS_QUEUE_SIZE,
    ):
        self.ping_interval = ping_interval
        self.queue_size = queue_size
        self._rooms: Dict[str, Set[Connection]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._probe_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Cycle de vie
    # ------------------------------------------------------------------

    def start(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """Lie le bus à la boucle asyncio et démarre la sonde de vivacité."""
        self._loop = loop or asyncio.get_running_loop()
        self._probe_task = self._loop.create_task(self._probe_forever())
        logger.info("Bus de notifications démarré, ping toutes les %ss.", self.ping_interval)

    async def stop(self) -> None:
        """Arrête la sonde et ferme toutes les connexions (appelé à l'arrêt de l'API)."""
        if self._probe_task is not None:
            self._probe_task.cancel()
            self._probe_task = None
        for connection in self.connections():
            await self.disconnect(connection, code=1001)
        self._loop = None
        logger.info("Bus de notifications arrêté.")

    # ------------------------------------------------------------------
    # Abonnements
    # ------------------------------------------------------------------

    async def connect(self, websocket: WebSocket, room_code: str) -> Connection:
        """Accepte la poignée de main, abonne la connexion et confirme l'abonnement au client."""
        connection = Connection(websocket, room_code, self.queue_size)
        await websocket.accept()
        self.subscribe(connection, room_code)
        connection.enqueue(self._frame("connected", {"room": room_code}))
        return connection

    def subscribe(self, connection: Connection, room_code: str) -> None:
        connection.room_code = room_code
        connection.state = ConnectionState.OPEN
        self._rooms.setdefault(room_code, set()).add(connection)
        connection.sender = asyncio.get_running_loop().create_task(self._pump(connection))
        logger.info(
            "WebSocket connecté : salle=%s, connexions=%d",
            room_code, len(self._rooms[room_code]),
        )

    def unsubscribe(self, connection: Connection) -> None:
        connections = self._rooms.get(connection.room_code)
        if connections is not None:
            connections.discard(connection)
            if not connections:
                del self._rooms[connection.room_code]
        connection.state = ConnectionState.CLOSED

    async def disconnect(self, connection: Connection, code: int = 1000) -> None:
        """Désinscrit puis ferme la connexion. Idempotent."""
        was_registered = connection in self._rooms.get(connection.room_code, ())
        self.unsubscribe(connection)
        await connection.close(code=code)
        if was_registered:
            logger.info("WebSocket déconnecté : salle=%s", connection.room_code)

    def connections(self, room_code: Optional[str] = None) -> list[Connection]:
        if room_code is not None:
            return list(self._rooms.get(room_code, ()))
        return [c for conns in self._rooms.values() for c in conns]

    def connection_count(self, room_code: str) -> int:
        return len(self._rooms.get(room_code, ()))

    # ------------------------------------------------------------------
    # Diffusion
    # ------------------------------------------------------------------

    def broadcast(self, room_code: str, event_type: str, payload: Optional[dict] = None) -> int:
        """
        Diffuse un événement typé à toutes les connexions ouvertes d'une salle.
        Sans accusé de réception ni nouvel essai. Doit tourner sur la boucle du bus.
        Retourne le nombre de connexions servies.
        """
        frame = self._frame(event_type, payload)
        delivered = 0
        for connection in self.connections(room_code):
            if connection.enqueue(frame):
                delivered += 1
                continue
            logger.warning(
                "Connexion saturée ou fermée évincée (salle %s, événement %s)",
                room_code, event_type,
            )
            self._evict(connection, code=1011)
        logger.debug("Événement %s diffusé à %d connexion(s) de la salle %s", event_type, delivered, room_code)
        return delivered

    def publish(self, room_code: str, event_type: str, payload: Optional[dict] = None) -> None:
        """Point d'entrée thread-safe pour les services synchrones : fire-and-forget."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Bus non démarré, événement %s pour %s ignoré", event_type, room_code)
            return
        loop.call_soon_threadsafe(self.broadcast, room_code, event_type, payload)

    # ------------------------------------------------------------------
    # Trames entrantes et vivacité
    # ------------------------------------------------------------------

    def handle_inbound(self, connection: Connection, text: str) -> None:
        """Le canal ne transporte aucune mutation : seuls ping/pong sont interprétés."""
        if text == PONG_FRAME:
            connection.alive = True
        elif text == PING_FRAME:
            connection.enqueue(PONG_FRAME)
        else:
            logger.debug("Trame entrante ignorée (salle %s) : %r", connection.room_code, text[:50])

    async def probe_liveness(self) -> int:
        """
        Un passage de la sonde : toute connexion qui n'a pas répondu au ping précédent
        est fermée et désinscrite, les autres reçoivent un nouveau ping.
        Retourne le nombre de connexions évincées.
        """
        evicted = 0
        for connection in self.connections():
            if not connection.alive:
                logger.warning("Connexion sans réponse au ping fermée (salle %s)", connection.room_code)
                await self.disconnect(connection, code=1001)
                evicted += 1
                continue
            connection.alive = False
            connection.enqueue(PING_FRAME)
        return evicted

    async def _probe_forever(self) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await self.probe_liveness()
            except Exception as exc:
                logger.error("Erreur lors de la sonde de vivacité : %s", exc, exc_info=True)

    # ------------------------------------------------------------------
    # Interne
    # ------------------------------------------------------------------

    async def _pump(self, connection: Connection) -> None:
        """Vide la file sortante d'une connexion ; une erreur d'envoi l'évince."""
        try:
            while True:
                frame = await connection.outbox.get()
                if isinstance(frame, str):
                    await connection.websocket.send_text(frame)
                else:
                    await connection.websocket.send_json(frame)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Envoi impossible (salle %s) : %s, connexion évincée", connection.room_code, exc)
            self.unsubscribe(connection)
            await connection.close(code=1011)

    def _evict(self, connection: Connection, code: int) -> None:
        self.unsubscribe(connection)
        task = asyncio.get_running_loop().create_task(connection.close(code=code))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _frame(event_type: str, payload: Optional[dict]) -> dict:
        return {"type": event_type, "timestamp": int(time.time() * 1000), **(payload or {})}


def get_bus(request: Request) -> NotificationBus:
    """Dépendance FastAPI. Le bus est construit une fois et rangé dans app.state."""
    return request.app.state.bus
