"""
Adaptateur XPay: seul module qui parle à la passerelle de paiement.
- Authentification par en-tête x-api-key, corps toujours encodé en JSON.
- Staging / production ne diffèrent que par l'URL de base.
- Toute réponse non-succès ou illisible devient GatewayError(status, corps brut).
- La clé API n'apparaît jamais dans les logs ni dans les messages d'erreur.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from storefront import config
from storefront.payments.models import (
    PaymentRequest,
    PaymentResponse,
    PrepareAmountRequest,
    PrepareAmountResponse,
)
from storefront.utils.errors import GatewayError

logger = logging.getLogger(__name__)

PREPARE_AMOUNT_PATH = "/payments/prepare-amount/"
PAY_VARIABLE_AMOUNT_PATH = "/payments/pay/variable-amount/"

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


@dataclass(frozen=True)
class XPayConfig:
    api_key: str
    community_id: str
    variable_amount_id: int
    base_url: str
    is_production: bool = False
    timeout: float = 15.0

    @classmethod
    def from_env(cls) -> "XPayConfig":
        is_production = config.XPAY_ENV == "production"
        return cls(
            api_key=config.XPAY_API_KEY,
            community_id=config.XPAY_COMMUNITY_ID,
            variable_amount_id=config.XPAY_VARIABLE_AMOUNT_ID,
            base_url=config.XPAY_PRODUCTION_URL if is_production else config.XPAY_STAGING_URL,
            is_production=is_production,
            timeout=config.XPAY_TIMEOUT_SECONDS,
        )

    def __repr__(self) -> str:
        return f"XPayConfig(community_id={self.community_id!r}, base_url={self.base_url!r}, api_key=***)"


class XPayClient:
    def __init__(self, cfg: XPayConfig, transport: Optional[httpx.BaseTransport] = None):
        self.config = cfg
        self._http = httpx.Client(base_url=cfg.base_url, timeout=cfg.timeout, transport=transport)

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-api-key": self.config.api_key,
        }

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "XPayClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _redact(self, text: str) -> str:
        if self.config.api_key:
            return (text or "").replace(self.config.api_key, "***")
        return text or ""

    def _post(self, path: str, body: Dict[str, Any]) -> httpx.Response:
        try:
            res = self._http.post(path, json=body, headers=self.headers)
        except httpx.TransportError as e:
            logger.warning("xpay.post %s transport error: %s", path, type(e).__name__)
            raise GatewayError(f"XPay injoignable ({type(e).__name__})", body=self._redact(str(e))) from e
        logger.info("xpay.post %s status=%s", path, res.status_code)
        if not res.is_success:
            raise GatewayError(
                f"XPay {path} en échec: {res.status_code} {res.reason_phrase}",
                status_code=res.status_code,
                body=self._redact(res.text),
            )
        return res

    def _parse(self, model: Type[ResponseModel], res: httpx.Response) -> ResponseModel:
        try:
            payload = res.json()
        except ValueError as e:
            raise GatewayError("Réponse JSON invalide de XPay", status_code=res.status_code, body=self._redact(res.text)) from e
        try:
            parsed = model.model_validate(payload)
        except SchemaError as e:
            raise GatewayError("Réponse XPay hors schéma", status_code=res.status_code, body=self._redact(res.text)) from e
        status = getattr(parsed, "status", None)
        if status is not None and status.code >= 400:
            raise GatewayError(
                f"XPay a refusé la requête: {status.message}",
                status_code=status.code,
                body=self._redact(res.text),
            )
        return parsed

    def prepare_amount(self, request: PrepareAmountRequest) -> PrepareAmountResponse:
        """
        Demande à XPay le total payable (frais inclus) pour un montant proposé.
        Retour: PrepareAmountResponse (data.total_amount en unités majeures).
        """
        body = {**request.model_dump(mode="json"), "community_id": self.config.community_id}
        return self._parse(PrepareAmountResponse, self._post(PREPARE_AMOUNT_PATH, body))

    def create_payment(self, request: PaymentRequest) -> PaymentResponse:
        """
        Crée une transaction à montant variable.
        Retour: PaymentResponse (iframe_url, transaction_id, transaction_uuid, transaction_status).
        """
        body = {
            **request.model_dump(mode="json"),
            "community_id": self.config.community_id,
            "variable_amount_id": self.config.variable_amount_id,
        }
        res = self._parse(PaymentResponse, self._post(PAY_VARIABLE_AMOUNT_PATH, body))
        logger.info("xpay.create_payment transaction_id=%s status=%s", res.data.transaction_id, res.data.transaction_status)
        return res


def create_xpay_client(transport: Optional[httpx.BaseTransport] = None) -> XPayClient:
    return XPayClient(XPayConfig.from_env(), transport=transport)
