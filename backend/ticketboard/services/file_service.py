"""
Service métier pour les fichiers partagés d'une salle.

Le contenu est écrit dans UPLOAD_DIR sous un nom aléatoire (encrypted_name) :
le nom fourni par l'utilisateur ne sert qu'à l'affichage et au téléchargement.
Toute écriture disque suivie d'un échec est annulée (pas d'octets orphelins).

Note : la vérification du quota puis l'insertion ne sont pas atomiques entre deux
envois simultanés dans la même salle ; le quota peut être dépassé transitoirement.
"""

import logging
import secrets
from pathlib import Path
from typing import BinaryIO, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ticketboard.config import settings
from ticketboard.database import utcnow
from ticketboard.exceptions import (
    AuthorizationError,
    FileTooLargeError,
    NotFoundError,
    QuotaExceededError,
    StoreError,
    ValidationError,
)
from ticketboard.models.file import File
from ticketboard.models.room import Room
from ticketboard.schemas.file import FileItem, FileListResponse
from ticketboard.services.notification_bus import NotificationBus
from ticketboard.services.room_service import touch_activity

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def storage_dir() -> Path:
    path = Path(settings.UPLOAD_DIR)
    path.mkdir(parents=True, exist_ok=True)
    return path


def object_path(encrypted_name: str) -> Path:
    return storage_dir() / encrypted_name


def room_usage(db: Session, room_code: str) -> int:
    """Somme des tailles des fichiers de la salle, en octets."""
    return db.execute(
        select(func.coalesce(func.sum(File.size), 0)).where(File.room_code == room_code)
    ).scalar() or 0


def list_files(db: Session, room_code: str) -> FileListResponse:
    files = db.execute(
        select(File)
        .where(File.room_code == room_code)
        .order_by(File.uploaded_at.desc())
    ).scalars().all()
    return FileListResponse(
        files=[FileItem.model_validate(f) for f in files],
        usage=sum(f.size for f in files),
        limit=settings.ROOM_STORAGE_LIMIT,
    )


def upload_file(
    db: Session,
    bus: NotificationBus,
    room_code: Optional[str],
    user_id: Optional[str],
    stream: Optional[BinaryIO],
    original_name: Optional[str],
    mime_type: Optional[str] = None,
    declared_size: Optional[int] = None,
) -> FileItem:
    """
    Enregistre un fichier dans la salle si le quota le permet.

    Étapes :
    1. Valider les champs et l'existence de la salle
    2. Refuser d'emblée un fichier annoncé au-delà de MAX_FILE_SIZE
    3. Écrire le contenu sous un nom aléatoire (taille recomptée pendant l'écriture)
    4. Vérifier usage + taille <= ROOM_STORAGE_LIMIT, sinon supprimer l'objet écrit
    5. Insérer l'enregistrement, sinon supprimer l'objet écrit
    6. Rafraîchir l'activité et notifier la salle (newFile)
    """
    if stream is None or not room_code or not user_id:
        raise ValidationError("Fichier, roomCode et userId requis.")
    if db.get(Room, room_code) is None:
        raise NotFoundError("Salle introuvable.")
    if declared_size is not None and declared_size > settings.MAX_FILE_SIZE:
        raise FileTooLargeError("Fichier trop volumineux.")

    encrypted_name = secrets.token_hex(16)
    path = object_path(encrypted_name)
    size = _write_object(stream, path)

    try:
        usage = room_usage(db, room_code)
        if usage + size > settings.ROOM_STORAGE_LIMIT:
            raise QuotaExceededError("Quota de stockage de la salle dépassé.")

        record = File(
            original_name=original_name or "fichier",
            encrypted_name=encrypted_name,
            mime_type=mime_type or "application/octet-stream",
            size=size,
            room_code=room_code,
            user_id=user_id,
            uploaded_at=utcnow(),
        )
        db.add(record)
        db.commit()
        db.refresh(record)
    except QuotaExceededError:
        _remove_object(path)
        logger.warning("Envoi refusé dans la salle %s : quota dépassé (%d octets)", room_code, size)
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        _remove_object(path)
        logger.error("Enregistrement du fichier impossible dans la salle %s : %s", room_code, exc)
        raise StoreError("Enregistrement du fichier impossible.")

    touch_activity(db, room_code)
    bus.publish(room_code, "newFile", {
        "id": record.id,
        "name": record.original_name,
        "size": record.size,
        "userId": record.user_id,
    })
    logger.info("Fichier %s (%d octets) ajouté à la salle %s", record.id, size, room_code)
    return FileItem.model_validate(record)


def open_download(db: Session, file_id: str) -> Tuple[File, Path]:
    """Retourne l'enregistrement et le chemin disque. Enregistrement ou objet absent → NotFoundError."""
    record = db.get(File, file_id)
    if record is None:
        raise NotFoundError("Fichier introuvable.")
    path = object_path(record.encrypted_name)
    if not path.is_file():
        logger.warning("Objet disque manquant pour le fichier %s", file_id)
        raise NotFoundError("Fichier introuvable.")
    return record, path


def delete_file(db: Session, bus: NotificationBus, file_id: str, requester_id: Optional[str]) -> None:
    """
    Supprime un fichier (créateur ou administrateur de la salle).
    L'objet disque est retiré s'il existe, puis l'enregistrement dans tous les cas.
    """
    record = db.get(File, file_id)
    if record is None:
        raise NotFoundError("Fichier introuvable.")

    room = db.get(Room, record.room_code)
    admin_id = room.admin_id if room is not None else None
    if not requester_id or requester_id not in (record.user_id, admin_id):
        raise AuthorizationError("Non autorisé à supprimer ce fichier.")

    room_code = record.room_code
    if not _remove_object(object_path(record.encrypted_name)):
        logger.warning("Objet disque déjà absent pour le fichier %s", file_id)
    db.delete(record)
    db.commit()

    touch_activity(db, room_code)
    bus.publish(room_code, "deleteFile", {"id": file_id})


def purge_room_files(db: Session, room_code: str) -> int:
    """Supprime tous les fichiers d'une salle : objets disque d'abord, enregistrements ensuite."""
    records = db.execute(select(File).where(File.room_code == room_code)).scalars().all()
    for record in records:
        _remove_object(object_path(record.encrypted_name))
    for record in records:
        db.delete(record)
    db.commit()
    return len(records)


def _write_object(stream: BinaryIO, path: Path) -> int:
    """Copie le flux par blocs vers path et retourne la taille écrite."""
    size = 0
    try:
        with open(path, "wb") as out:
            while True:
                chunk = stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.MAX_FILE_SIZE:
                    raise FileTooLargeError("Fichier trop volumineux.")
                out.write(chunk)
    except FileTooLargeError:
        _remove_object(path)
        raise
    except OSError as exc:
        _remove_object(path)
        logger.error("Écriture disque impossible (%s) : %s", path.name, exc)
        raise StoreError("Écriture du fichier impossible.")
    return size


def _remove_object(path: Path) -> bool:
    """Supprime l'objet disque. False s'il n'existait pas."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True
