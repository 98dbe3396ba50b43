"""
Configuration centrale de l'application via variables d'environnement.
Charger depuis un fichier .env en développement.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Base de données
    DATABASE_URL: str = "sqlite:///./tickets.db"

    # Stockage des fichiers partagés (nom chiffré sur disque)
    UPLOAD_DIR: str = "./uploads"
    ROOM_STORAGE_LIMIT: int = 2 * 1024 * 1024 * 1024  # 2 Go par salle
    MAX_FILE_SIZE: int = 1024 * 1024 * 1024  # 1 Go par fichier

    # Expiration
    ROOM_IDLE_MINUTES: int = 30
    ACTIVE_TICKET_TTL_MINUTES: int = 3 * 60 + 10  # 3h10
    RESOLVED_TICKET_TTL_MINUTES: int = 60
    ROOM_SWEEP_INTERVAL_SECONDS: int = 300
    TICKET_SWEEP_INTERVAL_SECONDS: int = 60

    # WebSocket
    PING_INTERVAL_SECONDS: int = 30
    WS_QUEUE_SIZE: int = 100

    # CORS
    CORS_ORIGIN_REGEX: str = r"https?://(localhost|127\.0\.0\.1)(:\d+)?"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
