"""
Schémas Pydantic pour les tickets.
Les noms de champs métier (nom, couleur, etat) sont ceux attendus par le front.
"""

from datetime import datetime
from typing import Optional

from pydantic import field_serializer

from ticketboard.schemas.base import CamelModel, as_utc_iso


class TicketCreate(CamelModel):
    # Les champs obligatoires sont vérifiés par le service pour renvoyer 400 et non 422
    nom: Optional[str] = None
    description: Optional[str] = None
    couleur: Optional[str] = None
    etat: Optional[str] = None
    user_id: Optional[str] = None
    room_code: Optional[str] = None


class TicketUpdate(CamelModel):
    """Mise à jour partielle : seuls les champs fournis remplacent la valeur stockée."""
    nom: Optional[str] = None
    description: Optional[str] = None
    couleur: Optional[str] = None
    etat: Optional[str] = None
    room_code: Optional[str] = None


class TicketResponse(CamelModel):
    id: str
    nom: str
    description: str
    couleur: str
    etat: str
    date_creation: datetime
    user_id: str
    room_code: str

    @field_serializer("date_creation")
    def serialize_date_creation(self, value: datetime) -> str:
        return as_utc_iso(value)
