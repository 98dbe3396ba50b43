"""
Point d'entrée principal de l'API du tableau de tickets.
Démarrage : uvicorn ticketboard.main:app --reload
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ticketboard.config import settings
from ticketboard.database import init_db
from ticketboard.exceptions import StoreError, TicketBoardError
from ticketboard.routers import files, live, rooms, tickets
from ticketboard.scheduler import start_scheduler, stop_scheduler
from ticketboard.services.notification_bus import NotificationBus

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Cycle de vie de l'application : crée les tables, lie le bus de notifications
    à la boucle courante, puis démarre et arrête le scheduler APScheduler.
    """
    init_db()
    bus: NotificationBus = app.state.bus
    bus.start(asyncio.get_running_loop())
    start_scheduler(bus)
    yield
    stop_scheduler()
    await bus.stop()


app = FastAPI(
    title="Ticket Board API",
    description="File d'attente de tickets par salle, annonces, fichiers partagés et notifications temps réel",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)
app.state.bus = NotificationBus()

# CORS : autorise les ports localhost en développement (CORS_ORIGIN_REGEX à ajuster en production).
app.add_middleware(
    CORSMiddleware,
    allow_origins=[],
    allow_origin_regex=settings.CORS_ORIGIN_REGEX,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept"],
)


app.include_router(rooms.router)
app.include_router(rooms.announcement_router)
app.include_router(tickets.router)
app.include_router(files.router)
app.include_router(live.router)


@app.exception_handler(TicketBoardError)
async def ticket_board_error_handler(request: Request, exc: TicketBoardError) -> JSONResponse:
    """Traduit les erreurs métier en {"error": message} avec le code HTTP associé."""
    if exc.status_code >= 500:
        logger.error("%s %s : %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s refusé (%d) : %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Corps de requête mal formé → 400, au même format que les autres erreurs."""
    errors = exc.errors()
    message = errors[0].get("msg", "Requête invalide.") if errors else "Requête invalide."
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Échec de persistance non géré : le détail reste dans les logs."""
    logger.error("Erreur de stockage sur %s %s : %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(status_code=500, content={"error": StoreError.default_message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware (qui injecte les headers CORS).
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Ticket Board API", "version": VERSION}
