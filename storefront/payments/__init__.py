"""
Module 'payments' (feature-first): point d'entrée public.
Réunit conversion des montants, modèles XPay, client passerelle, ledger, services et réconciliation.
"""

from .amounts import to_wire, from_wire, to_minor, from_minor
from .models import BillingData, CustomFields, PreparedAmount, Transaction, TransactionStatus, CallbackNotification
from .xpay_client import XPayClient, XPayConfig, create_xpay_client
from .ledger import TransactionLedger, InMemoryLedger, RedisLedger, get_ledger, reset_ledger
from .service import compute_cart_total, prepare_amount, prepare_cart, create_payment, checkout
from .reconciler import ReconcileResult, reconcile

__all__ = [
    # amounts
    "to_wire",
    "from_wire",
    "to_minor",
    "from_minor",
    # models
    "BillingData",
    "CustomFields",
    "PreparedAmount",
    "Transaction",
    "TransactionStatus",
    "CallbackNotification",
    # xpay
    "XPayClient",
    "XPayConfig",
    "create_xpay_client",
    # ledger
    "TransactionLedger",
    "InMemoryLedger",
    "RedisLedger",
    "get_ledger",
    "reset_ledger",
    # services
    "compute_cart_total",
    "prepare_amount",
    "prepare_cart",
    "create_payment",
    "checkout",
    # reconciliation
    "ReconcileResult",
    "reconcile",
]
