"""
Erreurs métier du tableau de tickets.

Chaque erreur porte le code HTTP que les handlers de main.py renvoient,
avec un corps {"error": message}.
"""

from typing import Optional


class TicketBoardError(Exception):
    status_code = 500
    default_message = "Une erreur interne est survenue."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(TicketBoardError):
    """Donnée obligatoire manquante ou invalide (corrigible par l'utilisateur)."""
    status_code = 400
    default_message = "Requête invalide."


class AuthorizationError(TicketBoardError):
    status_code = 403
    default_message = "Non autorisé."


class NotFoundError(TicketBoardError):
    status_code = 404
    default_message = "Ressource introuvable."


class TicketLimitError(TicketBoardError):
    """L'utilisateur détient déjà le nombre maximal de tickets actifs de la salle."""
    status_code = 409
    default_message = "Limite de tickets atteinte."


class QuotaExceededError(TicketBoardError):
    status_code = 413
    default_message = "Quota de stockage de la salle dépassé."


class FileTooLargeError(QuotaExceededError):
    default_message = "Fichier trop volumineux."


class StoreError(TicketBoardError):
    """Échec de persistance. Le message reste générique côté client."""
    status_code = 500
    default_message = "Erreur de stockage."
