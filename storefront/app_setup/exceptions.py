"""
Gestionnaires d'exceptions.
- StorefrontError: status HTTP de l'erreur, message public uniquement pour les erreurs amont.
- GatewayError: le détail brut (statut, corps) est journalisé, jamais renvoyé à l'acheteur.
- HTTPException: réponse JSON FastAPI standard.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from storefront.utils.errors import GatewayError, StorefrontError

logger = logging.getLogger(__name__)

def register_exception_handlers(app: FastAPI) -> None:
    """
    Enregistre les handlers métier et HTTP.
    - ValidationError / NotFoundError: {"detail": <message>} avec leur status (400 / 404).
    - GatewayError / CatalogUnavailableError: 502 + message générique.
    """
    @app.exception_handler(StorefrontError)
    async def storefront_error(request: Request, exc: StorefrontError):
        if isinstance(exc, GatewayError):
            logger.error("upstream error on %s %s: %s", request.method, request.url.path, exc)
            detail = exc.public_message
        else:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
            detail = exc.message
        return JSONResponse(status_code=exc.status_code, content={"detail": detail})

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))
