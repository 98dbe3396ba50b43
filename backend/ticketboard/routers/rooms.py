"""
Router pour les salles et leur annonce.
Création par code, lecture de la projection publique, réglages et annonce de l'administrateur.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ticketboard.database import get_db
from ticketboard.schemas.room import (
    AnnouncementResponse,
    AnnouncementUpdate,
    RoomCreate,
    RoomCreated,
    RoomResponse,
    RoomSettingsUpdate,
)
from ticketboard.services import room_service
from ticketboard.services.notification_bus import NotificationBus, get_bus

router = APIRouter(prefix="/api/rooms", tags=["Salles"])

announcement_router = APIRouter(prefix="/api/announcement", tags=["Annonce"])


@router.post("", response_model=RoomCreated, status_code=201, summary="Créer une salle")
def create_room(data: RoomCreate, db: Session = Depends(get_db)):
    """
    Crée une salle avec un code aléatoire de 5 caractères [A-Z0-9].
    L'utilisateur qui la crée en devient l'administrateur.
    """
    return room_service.create_room(db, data.user_id)


@router.get("/{code}", response_model=RoomResponse, summary="Détail d'une salle")
def get_room(code: str, db: Session = Depends(get_db)):
    """Retourne le code, l'administrateur, l'annonce et le nombre maximal de tickets actifs."""
    return room_service.get_room(db, code)


@router.put("/{code}", response_model=RoomResponse, summary="Modifier les réglages d'une salle")
def update_room_settings(
    code: str,
    data: RoomSettingsUpdate,
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """Réservé à l'administrateur : nombre maximal de tickets en cours par utilisateur (1 à 50)."""
    return room_service.update_room_settings(db, bus, code, data.user_id, data.max_tickets)


@announcement_router.get("/{room_code}", response_model=AnnouncementResponse, summary="Annonce d'une salle")
def get_announcement(room_code: str, db: Session = Depends(get_db)):
    """Retourne l'annonce courante ({"", "#cdcdcd"} si la salle est inconnue)."""
    return room_service.get_announcement(db, room_code)


@announcement_router.put("/{room_code}", response_model=AnnouncementResponse, summary="Publier l'annonce")
def set_announcement(
    room_code: str,
    data: AnnouncementUpdate,
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """
    Remplace l'annonce de la salle et notifie les clients connectés (updateAnnouncement).
    Retourne 404 si la salle est introuvable, 403 si l'utilisateur n'est pas l'administrateur.
    """
    return room_service.set_announcement(db, bus, room_code, data.user_id, data.texte, data.couleur)
