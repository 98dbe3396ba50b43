"""
Modèle SQLAlchemy pour les tickets d'une salle.
"""

from sqlalchemy import Column, DateTime, ForeignKey, String, Text

from ticketboard.database import Base, utcnow

ETAT_EN_COURS = "en cours"


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(32), primary_key=True)  # Horodatage ms + suffixe aléatoire
    nom = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    couleur = Column(String(32), nullable=False, default="#cdcdcd")
    etat = Column(String(64), nullable=False, default=ETAT_EN_COURS)  # "en cours" ou état terminal libre
    date_creation = Column(DateTime, nullable=False, default=utcnow)
    user_id = Column(String(255), nullable=False)
    room_code = Column(String(5), ForeignKey("rooms.code"), nullable=False, index=True)
