# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles
# (tickets.room_code → rooms.code, files.room_code → rooms.code).

from ticketboard.models.room import Room  # noqa: F401  (doit précéder ticket et file)
from ticketboard.models.ticket import Ticket  # noqa: F401
from ticketboard.models.file import File  # noqa: F401
