"""
Service métier pour les salles : création, annonce, réglages et expiration des salles inactives.
"""

import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ticketboard.config import settings
from ticketboard.database import utcnow
from ticketboard.exceptions import AuthorizationError, NotFoundError, StoreError, ValidationError
from ticketboard.models.room import Room
from ticketboard.models.ticket import Ticket
from ticketboard.schemas.room import AnnouncementResponse, RoomCreated, RoomResponse
from ticketboard.services.notification_bus import NotificationBus

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 5
CODE_ATTEMPTS = 5
DEFAULT_COLOR = "#cdcdcd"
MAX_TICKETS_LIMIT = 50


def generate_room_code() -> str:
    """Code de 5 caractères tirés de [A-Z0-9]."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))


def create_room(db: Session, user_id: Optional[str]) -> RoomCreated:
    """
    Crée une salle dont user_id devient l'administrateur.

    Quelques tirages sont tentés pour éviter un code déjà pris ; une collision
    détectée à l'insertion (course entre deux créations) remonte en StoreError,
    jamais en écrasement silencieux.
    """
    if not user_id or not user_id.strip():
        raise ValidationError("userId requis.")

    code = generate_room_code()
    for _ in range(CODE_ATTEMPTS - 1):
        if db.get(Room, code) is None:
            break
        code = generate_room_code()

    now = utcnow()
    room = Room(
        code=code,
        admin_id=user_id,
        announcement_message="",
        announcement_color=DEFAULT_COLOR,
        max_tickets=1,
        created_at=now,
        last_activity=now,
    )
    db.add(room)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.error("Collision de code de salle à l'insertion : %s", code)
        raise StoreError("Impossible de créer la salle, veuillez réessayer.")

    logger.info("Salle créée : %s (admin %s)", code, user_id)
    return RoomCreated(code=room.code, admin_id=room.admin_id)


def get_room(db: Session, code: str) -> RoomResponse:
    """Retourne la projection publique d'une salle. Lève NotFoundError si absente."""
    room = db.get(Room, code)
    if room is None:
        raise NotFoundError("Salle introuvable.")
    return RoomResponse.model_validate(room)


def update_room_settings(
    db: Session,
    bus: NotificationBus,
    code: str,
    user_id: Optional[str],
    max_tickets: Optional[int],
) -> RoomResponse:
    """Modifie le nombre maximal de tickets actifs par utilisateur (admin uniquement)."""
    room = db.get(Room, code)
    if room is None:
        raise NotFoundError("Salle introuvable.")
    if user_id != room.admin_id:
        raise AuthorizationError("Seul l'administrateur peut modifier les réglages de la salle.")
    if max_tickets is None or not 1 <= max_tickets <= MAX_TICKETS_LIMIT:
        raise ValidationError(f"maxTickets doit être compris entre 1 et {MAX_TICKETS_LIMIT}.")

    room.max_tickets = max_tickets
    db.commit()
    db.refresh(room)

    touch_activity(db, code)
    bus.publish(code, "update")
    return RoomResponse.model_validate(room)


def touch_activity(db: Session, code: Optional[str]) -> None:
    """
    Rafraîchit last_activity de la salle. Best-effort : une erreur est journalisée
    mais ne fait jamais échouer la mutation qui vient de réussir.
    """
    if not code:
        return
    try:
        room = db.get(Room, code)
        if room is None:
            return
        room.last_activity = utcnow()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Mise à jour de l'activité impossible pour la salle %s : %s", code, exc)


def get_announcement(db: Session, code: str) -> AnnouncementResponse:
    """Retourne l'annonce courante, ou l'annonce vide par défaut si la salle est inconnue."""
    room = db.get(Room, code)
    if room is None:
        return AnnouncementResponse(texte="", couleur=DEFAULT_COLOR)
    return AnnouncementResponse(texte=room.announcement_message, couleur=room.announcement_color)


def set_announcement(
    db: Session,
    bus: NotificationBus,
    code: str,
    user_id: Optional[str],
    texte: Optional[str],
    couleur: Optional[str] = None,
) -> AnnouncementResponse:
    """Publie l'annonce de la salle (admin uniquement) et notifie les clients connectés."""
    room = db.get(Room, code)
    if room is None:
        raise NotFoundError("Salle introuvable.")
    if user_id != room.admin_id:
        raise AuthorizationError("Seul l'administrateur peut publier une annonce.")

    room.announcement_message = texte or ""
    room.announcement_color = couleur or DEFAULT_COLOR
    db.commit()

    announcement = AnnouncementResponse(texte=room.announcement_message, couleur=room.announcement_color)
    bus.publish(code, "updateAnnouncement", announcement.model_dump())
    return announcement


def sweep_idle_rooms(db: Session, now: Optional[datetime] = None) -> int:
    """
    Supprime les salles inactives depuis plus de ROOM_IDLE_MINUTES et sans aucun ticket,
    fichiers compris (disque puis enregistrements). Une salle qui contient un ticket,
    aussi vieux soit-il, n'est jamais supprimée ici.

    Une erreur sur une salle est journalisée et n'interrompt pas le reste du lot.
    Retourne le nombre de salles supprimées.
    """
    from ticketboard.services.file_service import purge_room_files

    now = now or utcnow()
    threshold = now - timedelta(minutes=settings.ROOM_IDLE_MINUTES)

    ticket_count = (
        select(func.count())
        .select_from(Ticket)
        .where(Ticket.room_code == Room.code)
        .scalar_subquery()
    )
    candidates = db.execute(
        select(Room.code).where(
            func.coalesce(Room.last_activity, Room.created_at) < threshold,
            ticket_count == 0,
        )
    ).scalars().all()

    deleted = 0
    for code in candidates:
        try:
            # Un ticket a pu être créé depuis la sélection
            remaining = db.execute(
                select(func.count()).select_from(Ticket).where(Ticket.room_code == code)
            ).scalar()
            if remaining:
                continue
            purge_room_files(db, code)
            room = db.get(Room, code)
            if room is not None:
                db.delete(room)
                db.commit()
            deleted += 1
            logger.info("Salle inactive supprimée : %s", code)
        except Exception as exc:
            db.rollback()
            logger.error("Suppression de la salle %s impossible : %s", code, exc)

    return deleted
