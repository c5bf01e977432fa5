"""
Structures explicites par endpoint XPay (prepare, pay, callback), validées à la frontière.
Les montants de requête/réponse restent des nombres "wire"; la conversion passe par amounts.py.
"""
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"


def _as_str(v: Any) -> Any:
    # XPay renvoie certains identifiants en nombre (transaction_id) et d'autres en chaîne
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(int(v)) if float(v).is_integer() else str(v)
    return v


class BillingData(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    name: str = Field(min_length=1)
    email: EmailStr
    phone_number: str = Field(min_length=1)


class PreparedAmount(BaseModel):
    model_config = ConfigDict(frozen=True)

    original_amount: Decimal
    total_amount: Decimal
    currency: str


class Transaction(BaseModel):
    model_config = ConfigDict(frozen=True)

    transaction_id: str
    transaction_uuid: str
    status: TransactionStatus
    iframe_url: str


class CustomFields(BaseModel):
    """
    Champs de corrélation transmis à XPay puis relus dans le callback.
    Ensemble fermé: pas de sac de clés arbitraires.
    """
    cart_items_count: int = 0
    order_timestamp: int = 0
    cart_ref: str = ""
    customer_email: str = ""
    customer_name: str = ""

    def to_wire(self) -> List[Dict[str, Any]]:
        return [{"field_label": k, "field_value": v} for k, v in self.model_dump().items()]

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "CustomFields":
        """
        Relit les champs connus depuis un callback.
        - Accepte les clés à plat (forme documentée) ou la liste custom_fields [{field_label, field_value}].
        - Les valeurs illisibles sont ignorées (valeurs par défaut).
        """
        values: Dict[str, Any] = {}
        for entry in payload.get("custom_fields") or []:
            if isinstance(entry, dict) and entry.get("field_label") in cls.model_fields:
                values[entry["field_label"]] = entry.get("field_value")
        for name in cls.model_fields:
            if name in payload and payload[name] is not None:
                values[name] = payload[name]
        fields: Dict[str, Any] = {}
        for name, value in values.items():
            try:
                fields[name] = int(value) if cls.model_fields[name].annotation is int else str(value)
            except (TypeError, ValueError):
                continue
        return cls(**fields)


# --- prepare-amount ---

class GatewayStatus(BaseModel):
    code: int
    message: str = ""
    errors: List[Any] = Field(default_factory=list)


class PrepareAmountRequest(BaseModel):
    amount: float
    currency: str = "EGP"
    selected_payment_method: str = "card"


class PrepareAmountData(BaseModel):
    total_amount: float
    total_amount_currency: str


class PrepareAmountResponse(BaseModel):
    status: GatewayStatus
    data: PrepareAmountData


# --- pay/variable-amount ---

class CustomFieldEntry(BaseModel):
    field_label: str
    field_value: Union[str, int, float, bool]


class PaymentRequest(BaseModel):
    billing_data: BillingData
    amount: float
    original_amount: float
    currency: str = "EGP"
    language: str = "en"
    pay_using: str = "card"
    custom_fields: List[CustomFieldEntry] = Field(default_factory=list)


class PaymentData(BaseModel):
    iframe_url: str
    transaction_id: str
    transaction_status: str = TransactionStatus.PENDING.value
    transaction_uuid: str

    @field_validator("transaction_id", "transaction_uuid", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Any:
        return _as_str(v)


class PaymentResponse(BaseModel):
    status: GatewayStatus
    data: PaymentData


# --- callback (webhook / redirection navigateur) ---

class CallbackNotification(BaseModel):
    model_config = ConfigDict(extra="allow")

    transaction_id: Optional[str] = None
    transaction_status: Optional[str] = None
    transaction_uuid: Optional[str] = None
    member_id: Optional[str] = None
    payment_id: Optional[str] = None
    merchant_id: Optional[str] = None
    total_amount: Optional[float] = None
    total_amount_piasters: Optional[int] = None

    @field_validator("transaction_id", "transaction_uuid", "member_id", "payment_id", "merchant_id", mode="before")
    @classmethod
    def _coerce_ids(cls, v: Any) -> Any:
        return _as_str(v)

    @field_validator("transaction_status", mode="before")
    @classmethod
    def _upper_status(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @property
    def is_successful(self) -> bool:
        return self.transaction_status == TransactionStatus.SUCCESSFUL.value

    def custom_fields(self) -> CustomFields:
        return CustomFields.from_payload({**(self.model_extra or {}), **self.model_dump(exclude_none=True)})
