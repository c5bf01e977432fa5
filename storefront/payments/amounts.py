"""
Point unique de conversion des montants échangés avec XPay.

Convention retenue: unités majeures (EGP) en nombre JSON à 2 décimales, pour prepare-amount
ET pay, en requête comme en réponse. Aucun autre module ne convertit de montant "à la main".
Les centimes (piastres) n'apparaissent que dans le callback (total_amount_piasters), utilisé
comme contrôle de cohérence d'échelle.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict

MINOR_UNIT_DIGITS: Dict[str, int] = {"EGP": 2, "USD": 2, "EUR": 2}

def _exponent(currency: str) -> Decimal:
    digits = MINOR_UNIT_DIGITS.get((currency or "").upper(), 2)
    return Decimal(1).scaleb(-digits)

def quantize(amount: Decimal, currency: str = "EGP") -> Decimal:
    return Decimal(amount).quantize(_exponent(currency), rounding=ROUND_HALF_UP)

def to_wire(amount: Decimal, currency: str = "EGP") -> float:
    """Decimal interne -> nombre JSON en unités majeures."""
    return float(quantize(amount, currency))

def from_wire(value: Any, currency: str = "EGP") -> Decimal:
    """Nombre JSON (unités majeures) -> Decimal interne. str() évite l'artefact binaire des floats."""
    return quantize(Decimal(str(value)), currency)

def to_minor(amount: Decimal, currency: str = "EGP") -> int:
    digits = MINOR_UNIT_DIGITS.get((currency or "").upper(), 2)
    return int(quantize(amount, currency).scaleb(digits))

def from_minor(value: int, currency: str = "EGP") -> Decimal:
    digits = MINOR_UNIT_DIGITS.get((currency or "").upper(), 2)
    return quantize(Decimal(int(value)).scaleb(-digits), currency)
