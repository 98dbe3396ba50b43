"""
Modèle SQLAlchemy pour les fichiers partagés dans une salle.
Le contenu vit sur disque sous encrypted_name, jamais sous le nom fourni par l'utilisateur.
"""

import uuid

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String

from ticketboard.database import Base, utcnow


class File(Base):
    __tablename__ = "files"

    id = Column(String(32), primary_key=True, default=lambda: uuid.uuid4().hex)
    original_name = Column(String(255), nullable=False)
    encrypted_name = Column(String(64), nullable=False, unique=True)
    mime_type = Column(String(255), nullable=False, default="application/octet-stream")
    size = Column(BigInteger, nullable=False)  # Octets
    room_code = Column(String(5), ForeignKey("rooms.code"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)
