"""
Modèle SQLAlchemy pour les salles.
Une salle est identifiée par un code court à 5 caractères saisi par les utilisateurs.
"""

from sqlalchemy import Column, DateTime, Integer, String, Text

from ticketboard.database import Base, utcnow


class Room(Base):
    __tablename__ = "rooms"

    code = Column(String(5), primary_key=True)
    admin_id = Column(String(255), nullable=False)  # Immuable après création
    announcement_message = Column(Text, nullable=False, default="")
    announcement_color = Column(String(32), nullable=False, default="#cdcdcd")
    max_tickets = Column(Integer, nullable=False, default=1)  # Tickets actifs par utilisateur

    last_activity = Column(DateTime, nullable=True)  # NULL = aucune activité depuis la création
    created_at = Column(DateTime, nullable=False, default=utcnow)
