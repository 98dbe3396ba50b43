"""
Schémas Pydantic pour les fichiers partagés.
Le nom chiffré sur disque n'est jamais exposé.
"""

from datetime import datetime
from typing import List

from pydantic import field_serializer

from ticketboard.schemas.base import CamelModel, as_utc_iso


class FileItem(CamelModel):
    id: str
    original_name: str
    mime_type: str
    size: int
    room_code: str
    user_id: str
    uploaded_at: datetime

    @field_serializer("uploaded_at")
    def serialize_uploaded_at(self, value: datetime) -> str:
        return as_utc_iso(value)


class FileListResponse(CamelModel):
    """Fichiers d'une salle avec l'occupation courante et le quota (en octets)."""
    files: List[FileItem]
    usage: int
    limit: int
