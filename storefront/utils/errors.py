"""
Taxonomie des erreurs métier du pipeline panier -> paiement.
- Chaque erreur porte un status HTTP et un message "public" (affichable à l'acheteur).
- Le détail brut (réponse passerelle, etc.) reste dans l'exception pour les logs uniquement.
"""
from typing import Optional


class StorefrontError(Exception):
    status_code: int = 500
    public_message: str = "Erreur interne"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class ValidationError(StorefrontError):
    """Données de facturation invalides, panier vide, montant non positif."""
    status_code = 400
    public_message = "Requête invalide"


class InvalidCartError(ValidationError):
    public_message = "Panier invalide"


class NotFoundError(StorefrontError):
    status_code = 404
    public_message = "Produit introuvable"


class GatewayError(StorefrontError):
    """
    Réponse non-succès (ou illisible) d'un service amont.
    - status_code_upstream: statut HTTP renvoyé par l'amont (None si erreur réseau/timeout)
    - body: corps brut de la réponse, destiné aux logs (jamais renvoyé à l'acheteur)
    """
    status_code = 502
    public_message = "Le paiement a échoué, veuillez réessayer"

    def __init__(self, message: Optional[str] = None, *, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.upstream_status = status_code
        self.body = body

    def __str__(self) -> str:
        return f"{self.message} (status={self.upstream_status}) body={self.body[:500]}"


class CatalogUnavailableError(GatewayError):
    public_message = "Catalogue indisponible, veuillez réessayer"


class UnauthorizedError(StorefrontError):
    """Callback dont l'identifiant marchand ne correspond pas à la communauté configurée."""
    status_code = 401
    public_message = "Callback non autorisé"


class InvalidCallbackError(StorefrontError):
    """Callback sans champs de corrélation (transaction_id, transaction_status)."""
    status_code = 400
    public_message = "Callback invalide"
