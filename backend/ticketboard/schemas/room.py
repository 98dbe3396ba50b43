"""
Schémas Pydantic pour les salles et leur annonce.
"""

from typing import Optional

from ticketboard.schemas.base import CamelModel


class RoomCreate(CamelModel):
    # Optionnel ici : l'absence est signalée par le service (400 {"error": ...})
    user_id: Optional[str] = None


class RoomCreated(CamelModel):
    code: str
    admin_id: str


class RoomResponse(CamelModel):
    """Projection publique d'une salle : les horodatages internes ne sortent pas."""
    code: str
    admin_id: str
    announcement_message: str
    announcement_color: str
    max_tickets: int


class RoomSettingsUpdate(CamelModel):
    user_id: Optional[str] = None
    max_tickets: Optional[int] = None


class AnnouncementUpdate(CamelModel):
    texte: Optional[str] = None
    couleur: Optional[str] = None
    user_id: Optional[str] = None


class AnnouncementResponse(CamelModel):
    texte: str
    couleur: str
