"""
Router pour les tickets d'une salle.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ticketboard.database import get_db
from ticketboard.schemas.base import MessageResponse
from ticketboard.schemas.ticket import TicketCreate, TicketResponse, TicketUpdate
from ticketboard.services import ticket_service
from ticketboard.services.notification_bus import NotificationBus, get_bus

router = APIRouter(prefix="/api/tickets", tags=["Tickets"])


@router.get("/{room_code}", response_model=List[TicketResponse], summary="Lister les tickets d'une salle")
def list_tickets(room_code: str, db: Session = Depends(get_db)):
    """Retourne les tickets de la salle, du plus récent au plus ancien."""
    return ticket_service.list_tickets(db, room_code)


@router.post("", response_model=TicketResponse, status_code=201, summary="Créer un ticket")
def create_ticket(
    data: TicketCreate,
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """
    Crée un ticket dans une salle.
    nom, userId et roomCode sont obligatoires ; état "en cours" et couleur #cdcdcd par défaut.
    Retourne 404 si la salle est introuvable, 409 si la limite de tickets en cours est atteinte.
    """
    return ticket_service.create_ticket(db, bus, data)


@router.put("/{ticket_id}", summary="Modifier un ticket")
def update_ticket(
    ticket_id: str,
    data: TicketUpdate,
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """
    Mise à jour partielle : seuls les champs fournis sont modifiés.
    Renvoie l'écho des champs appliqués, même si le ticket n'existe plus.
    """
    return ticket_service.update_ticket(db, bus, ticket_id, data)


@router.delete("/{ticket_id}", response_model=MessageResponse, summary="Supprimer un ticket")
def delete_ticket(
    ticket_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """Réservé au créateur du ticket ou à l'administrateur de la salle."""
    ticket_service.delete_ticket(db, bus, ticket_id, user_id)
    return MessageResponse(message="Ticket supprimé")
