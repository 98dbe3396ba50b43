"""
Service métier pour les tickets d'une salle.
Gère la création, la modification partielle, la suppression autorisée et l'expiration automatique.
"""

import logging
import secrets
import time
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, inspect, select, update
from sqlalchemy.orm import Session

from ticketboard.config import settings
from ticketboard.database import utcnow
from ticketboard.exceptions import AuthorizationError, NotFoundError, TicketLimitError, ValidationError
from ticketboard.models.room import Room
from ticketboard.models.ticket import ETAT_EN_COURS, Ticket
from ticketboard.schemas.ticket import TicketCreate, TicketResponse, TicketUpdate
from ticketboard.services.notification_bus import NotificationBus
from ticketboard.services.room_service import DEFAULT_COLOR, touch_activity

logger = logging.getLogger(__name__)


def new_ticket_id() -> str:
    """Identifiant basé sur l'horodatage en ms, suffixé pour rester unique dans la même milliseconde."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}"


def list_tickets(db: Session, room_code: str) -> list[TicketResponse]:
    """Retourne les tickets de la salle, du plus récent au plus ancien."""
    tickets = db.execute(
        select(Ticket)
        .where(Ticket.room_code == room_code)
        .order_by(Ticket.date_creation.desc())
    ).scalars().all()
    return [TicketResponse.model_validate(t) for t in tickets]


def create_ticket(db: Session, bus: NotificationBus, data: TicketCreate) -> TicketResponse:
    """
    Crée un ticket dans une salle existante.

    Valeurs par défaut : description vide, couleur #cdcdcd, état "en cours".
    Hors administrateur, un utilisateur ne peut pas détenir plus de max_tickets
    tickets actifs dans la salle.
    """
    if not data.nom or not data.user_id or not data.room_code:
        raise ValidationError("nom, userId et roomCode sont requis.")

    room = db.get(Room, data.room_code)
    if room is None:
        raise NotFoundError("Salle introuvable.")

    etat = data.etat or ETAT_EN_COURS
    if etat == ETAT_EN_COURS and data.user_id != room.admin_id:
        active = db.execute(
            select(func.count())
            .select_from(Ticket)
            .where(
                Ticket.room_code == room.code,
                Ticket.user_id == data.user_id,
                Ticket.etat == ETAT_EN_COURS,
            )
        ).scalar() or 0
        if active >= room.max_tickets:
            raise TicketLimitError(
                f"Limite atteinte : {room.max_tickets} ticket(s) en cours par utilisateur."
            )

    ticket = Ticket(
        id=new_ticket_id(),
        nom=data.nom,
        description=data.description or "",
        couleur=data.couleur or DEFAULT_COLOR,
        etat=etat,
        date_creation=utcnow(),
        user_id=data.user_id,
        room_code=room.code,
    )
    db.add(ticket)
    db.commit()
    db.refresh(ticket)

    touch_activity(db, room.code)
    bus.publish(room.code, "update")
    logger.info("Ticket créé : %s dans la salle %s", ticket.id, room.code)
    return TicketResponse.model_validate(ticket)


def update_ticket(db: Session, bus: NotificationBus, ticket_id: str, data: TicketUpdate) -> dict:
    """
    Mise à jour partielle : un champ absent (ou nom/couleur/etat vide) garde sa valeur.

    Un id inconnu n'est pas une erreur : l'UPDATE ne touche aucune ligne et
    l'écho des champs est renvoyé tel quel.
    """
    changes = {}
    for field in ("nom", "couleur", "etat"):
        value = getattr(data, field)
        if value:
            changes[field] = value
    if data.description is not None:
        changes["description"] = data.description

    if changes:
        result = db.execute(update(Ticket).where(Ticket.id == ticket_id).values(**changes))
        db.commit()
        if result.rowcount == 0:
            logger.debug("Mise à jour sans effet : ticket %s inexistant", ticket_id)

    if data.room_code:
        touch_activity(db, data.room_code)
        bus.publish(data.room_code, "update")

    echo = {"id": ticket_id, **changes}
    if data.room_code:
        echo["roomCode"] = data.room_code
    return echo


def delete_ticket(db: Session, bus: NotificationBus, ticket_id: str, requester_id: Optional[str]) -> None:
    """
    Supprime un ticket. Autorisé pour son créateur ou l'administrateur de la salle.
    Lève NotFoundError si le ticket n'existe pas, AuthorizationError sinon.
    """
    ticket = db.get(Ticket, ticket_id)
    if ticket is None:
        raise NotFoundError("Ticket introuvable.")

    room = db.get(Room, ticket.room_code)
    admin_id = room.admin_id if room is not None else None
    if not requester_id or requester_id not in (ticket.user_id, admin_id):
        raise AuthorizationError("Non autorisé à supprimer ce ticket.")

    room_code = ticket.room_code
    db.delete(ticket)
    db.commit()

    touch_activity(db, room_code)
    bus.publish(room_code, "update")


def is_expired(ticket: Ticket, now: datetime) -> bool:
    """Un ticket en cours expire après 3h10, un ticket terminé après 1h (strictement)."""
    age = now - ticket.date_creation
    if ticket.etat == ETAT_EN_COURS:
        return age > timedelta(minutes=settings.ACTIVE_TICKET_TTL_MINUTES)
    return age > timedelta(minutes=settings.RESOLVED_TICKET_TTL_MINUTES)


def sweep_expired_tickets(db: Session, bus: NotificationBus, now: Optional[datetime] = None) -> int:
    """
    Supprime les tickets expirés et notifie chaque salle concernée une seule fois.
    Une erreur sur un ticket est journalisée et n'interrompt pas le lot.
    Retourne le nombre de tickets supprimés.
    """
    now = now or utcnow()
    shortest_ttl = min(settings.ACTIVE_TICKET_TTL_MINUTES, settings.RESOLVED_TICKET_TTL_MINUTES)
    candidates = db.execute(
        select(Ticket).where(Ticket.date_creation < now - timedelta(minutes=shortest_ttl))
    ).scalars().all()

    deleted = 0
    affected_rooms = set()
    for ticket in candidates:
        # Identité lue depuis l'état de l'instance, sans rechargement
        ticket_id = inspect(ticket).identity[0]
        try:
            if not is_expired(ticket, now):
                continue
            room_code = ticket.room_code
            db.delete(ticket)
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.error("Suppression du ticket expiré %s impossible : %s", ticket_id, exc)
            continue
        deleted += 1
        affected_rooms.add(room_code)

    for room_code in affected_rooms:
        bus.publish(room_code, "update")

    if deleted:
        logger.info("%d ticket(s) expiré(s) supprimé(s)", deleted)
    return deleted
