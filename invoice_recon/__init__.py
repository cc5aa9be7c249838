"""
Supplier Invoice Reconciliation Service

A Python service that extracts purchased line items from auction supplier
documents (CSV listings and PDF statements), recomputes the tax-included
total with each supplier's rounding rules and flags differences from the
amount the supplier invoiced.
"""

__version__ = "0.1.0"
__author__ = "Invoice Reconciliation Team"

from .schemas import LineItem, InvoiceSummary, SupplierConfig, ReconciliationRun, ImportResult
from .calculator import apply_rounding, calculate_total
from .selector import select_extractor
from .reconciler import reconcile, update_fee_overrides

__all__ = [
    "LineItem",
    "InvoiceSummary",
    "SupplierConfig",
    "ReconciliationRun",
    "ImportResult",
    "apply_rounding",
    "calculate_total",
    "select_extractor",
    "reconcile",
    "update_fee_overrides",
]
