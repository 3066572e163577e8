from typing import Optional


class AutoDownscaleError(Exception):
    """Erreur de base du downscaler"""


class TransportError(AutoDownscaleError):
    """L'API Kubernetes est injoignable ou a rejeté la requête"""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(AutoDownscaleError):
    """La ressource ciblée n'existe pas"""


class AlreadyExistsError(AutoDownscaleError):
    """La ressource à créer existe déjà"""


class StateCorruptionError(AutoDownscaleError):
    """
    Une annotation original-* est absente ou illisible alors qu'elle est
    nécessaire à la restauration. Nécessite une intervention manuelle.
    """


class ConfigurationError(AutoDownscaleError):
    """Durée mal formée ou paramètre obligatoire manquant"""


class ReadinessTimeoutError(AutoDownscaleError):
    """Les ressources ne sont pas prêtes dans le délai imparti"""


class NotDownscaledError(AutoDownscaleError):
    """L'environnement n'est pas en veille, rien à relancer"""
