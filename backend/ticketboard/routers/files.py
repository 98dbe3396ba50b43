"""
Router pour les fichiers partagés d'une salle (quota de stockage par salle).
"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ticketboard.database import get_db
from ticketboard.schemas.base import MessageResponse
from ticketboard.schemas.file import FileListResponse
from ticketboard.services import file_service
from ticketboard.services.notification_bus import NotificationBus, get_bus

router = APIRouter(prefix="/api/files", tags=["Fichiers"])


@router.get("/download/{file_id}", summary="Télécharger un fichier")
def download_file(file_id: str, db: Session = Depends(get_db)):
    """Renvoie le contenu sous son nom d'origine. 404 si l'enregistrement ou l'objet disque manque."""
    record, path = file_service.open_download(db, file_id)
    return FileResponse(
        path=str(path),
        filename=record.original_name,
        media_type=record.mime_type,
    )


@router.get("/{room_code}", response_model=FileListResponse, summary="Lister les fichiers d'une salle")
def list_files(room_code: str, db: Session = Depends(get_db)):
    """Retourne les fichiers de la salle, l'occupation (usage) et le quota (limit), en octets."""
    return file_service.list_files(db, room_code)


@router.post("", response_model=MessageResponse, status_code=201, summary="Envoyer un fichier")
def upload_file(
    file: Optional[UploadFile] = File(None),
    room_code: Optional[str] = Form(None, alias="roomCode"),
    user_id: Optional[str] = Form(None, alias="userId"),
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """
    Envoi multipart (file, roomCode, userId).

    - 400 si un champ manque
    - 413 si le fichier dépasse la taille maximale ou le quota de la salle
    - 500 si l'écriture disque ou l'enregistrement échoue (objet disque supprimé)
    """
    file_service.upload_file(
        db,
        bus,
        room_code,
        user_id,
        file.file if file is not None else None,
        file.filename if file is not None else None,
        file.content_type if file is not None else None,
        file.size if file is not None else None,
    )
    return MessageResponse(message="Fichier envoyé")


@router.delete("/{file_id}", response_model=MessageResponse, summary="Supprimer un fichier")
def delete_file(
    file_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    bus: NotificationBus = Depends(get_bus),
):
    """Réservé au créateur du fichier ou à l'administrateur de la salle. Libère le quota."""
    file_service.delete_file(db, bus, file_id, user_id)
    return MessageResponse(message="Fichier supprimé")
