"""
Planificateur APScheduler pour l'expiration automatique.

Deux jobs indépendants :
- toutes les minutes, suppression des tickets expirés (3h10 en cours, 1h terminés)
- toutes les 5 minutes, suppression des salles inactives depuis 30 min et sans ticket
"""

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from ticketboard.config import settings
from ticketboard.database import SessionLocal
from ticketboard.services.notification_bus import NotificationBus

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def _sweep_expired_tickets(bus: NotificationBus) -> None:
    """
    Tâche planifiée : supprime les tickets expirés et notifie les salles touchées.
    Import local pour éviter les imports circulaires.
    """
    from ticketboard.services.ticket_service import sweep_expired_tickets

    db = SessionLocal()
    try:
        sweep_expired_tickets(db, bus)
    except Exception as exc:
        logger.error("Erreur lors de l'expiration des tickets : %s", exc)
    finally:
        db.close()


def _sweep_idle_rooms() -> None:
    """Tâche planifiée : supprime les salles vides inactives et leurs fichiers."""
    from ticketboard.services.room_service import sweep_idle_rooms

    db = SessionLocal()
    try:
        deleted = sweep_idle_rooms(db)
        if deleted:
            logger.info("%d salle(s) inactive(s) supprimée(s)", deleted)
    except Exception as exc:
        logger.error("Erreur lors du nettoyage des salles inactives : %s", exc)
    finally:
        db.close()


def start_scheduler(bus: NotificationBus) -> None:
    """Démarre le planificateur en arrière-plan (appelé au démarrage de l'API)."""
    scheduler.add_job(
        _sweep_expired_tickets,
        trigger="interval",
        seconds=settings.TICKET_SWEEP_INTERVAL_SECONDS,
        args=[bus],
        id="ticket_expiry_sweep",
        replace_existing=True,
    )
    scheduler.add_job(
        _sweep_idle_rooms,
        trigger="interval",
        seconds=settings.ROOM_SWEEP_INTERVAL_SECONDS,
        id="idle_room_sweep",
        replace_existing=True,
    )
    if not scheduler.running:
        scheduler.start()
    logger.info(
        "Scheduler démarré : tickets toutes les %ss, salles toutes les %ss.",
        settings.TICKET_SWEEP_INTERVAL_SECONDS, settings.ROOM_SWEEP_INTERVAL_SECONDS,
    )


def stop_scheduler() -> None:
    """Arrête le planificateur proprement (appelé à l'arrêt de l'API)."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler arrêté.")
