"""
Pydantic models for extracted documents, supplier rules and reconciliation runs.

This module defines the core data structures used throughout the service:
- LineItem and InvoiceSummary models produced by the document extractors
- SupplierConfig describing how a supplier computes its own invoice total
- ReconciliationRun and ImportResult describing one batch import and its verdict

Every model serializes with camelCase keys (``productId``, ``hasAmountMismatch``)
and accepts either camelCase or snake_case on input.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

from .config import (
    DEFAULT_CALCULATION_TYPE,
    DEFAULT_ROUNDING_MODE,
    DEFAULT_TAX_RATE,
    RunStatus,
    TaxType,
)


CAMEL_CONFIG = {
    "alias_generator": to_camel,
    "populate_by_name": True,
}


class LineItem(BaseModel):
    """
    Represents one purchased unit extracted from a supplier document.

    Attributes:
        product_id: Natural key used for persistence (derivation is supplier-specific)
        name: Product name, never empty
        purchase_price: Pre-fee unit cost; tax inclusion is defined by SupplierConfig
        commission: Buyer commission for this unit
        quantity: Number of units (prices are already line amounts)
        metadata: Supplier-specific extras (accessories, serial numbers, source rows)
    """
    product_id: str = Field("", description="Natural key for persistence")
    name: str = Field(..., min_length=1, description="Product name")
    purchase_price: float = Field(..., ge=0, allow_inf_nan=False, description="Unit purchase price")
    commission: float = Field(0.0, ge=0, allow_inf_nan=False, description="Buyer commission")
    quantity: int = Field(1, ge=0, description="Number of units")
    brand: Optional[str] = Field(None, description="Brand name")
    description: Optional[str] = Field(None, description="Free-text description")
    box_number: Optional[str] = Field(None, description="Box number at the auction")
    row_number: Optional[str] = Field(None, description="Row number inside the box")
    original_product_id: Optional[str] = Field(None, description="Supplier-native item number")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Supplier-specific extras")

    model_config = {
        **CAMEL_CONFIG,
        "json_schema_extra": {
            "examples": [
                {
                    "productId": "024-7",
                    "name": "LOUIS VUITTON モノグラム スピーディ30",
                    "purchasePrice": 25000,
                    "commission": 2500,
                    "quantity": 1,
                    "brand": "LOUIS",
                    "boxNumber": "024",
                    "rowNumber": "7",
                    "originalProductId": "12",
                    "metadata": {"accessories": "箱"}
                }
            ]
        }
    }


class InvoiceSummary(BaseModel):
    """
    The claimed total as printed on a supplier document.

    Only ``total_amount`` is required; the decomposition is populated when the
    supplier's layout prints it.
    """
    total_amount: float = Field(..., allow_inf_nan=False, description="Final billed amount")
    subtotal: Optional[float] = Field(None, description="Purchase subtotal")
    tax: Optional[float] = Field(None, description="Consumption tax")
    participation_fee: Optional[float] = Field(None, description="Auction participation fee")
    shipping_fee: Optional[float] = Field(None, description="Shipping fee")
    other_fees: Optional[float] = Field(None, description="Other fees")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Provenance of the match")

    model_config = CAMEL_CONFIG


class ParseResult(BaseModel):
    """Output of a single extractor run over one document."""
    items: list[LineItem] = Field(default_factory=list)
    invoice_summary: Optional[InvoiceSummary] = None

    model_config = CAMEL_CONFIG


class ParserConfig(BaseModel):
    """
    Column mapping and decoding options for the CSV extractors.

    ``mapping`` maps a LineItem field (or an extra key) to a CSV column name.
    ``skip_rows`` lists zero-based data-row indices (after the header) to drop.
    """
    encoding: str = "utf-8"
    mapping: dict[str, str] = Field(default_factory=dict)
    skip_rows: list[int] = Field(default_factory=list)

    model_config = CAMEL_CONFIG


# ============================================================================
# Supplier Rules
# ============================================================================

class FeeConfig(BaseModel):
    """A fixed per-run fee and whether it already includes tax."""
    amount: float = Field(0.0, ge=0)
    tax_type: TaxType = TaxType.INCLUDED

    model_config = CAMEL_CONFIG


class RoundingConfig(BaseModel):
    """
    Where and how a supplier rounds tax-included amounts.

    Unknown values are tolerated here and resolved by the calculator
    (unknown calculation type -> total, unknown mode -> floor).
    """
    calculation_type: str = Field(DEFAULT_CALCULATION_TYPE, description="per_item | subtotal | total")
    rounding_mode: str = Field(DEFAULT_ROUNDING_MODE, description="floor | ceil | round")

    model_config = CAMEL_CONFIG


class SupplierConfig(BaseModel):
    """
    Business rules for recomputing a supplier's invoice total.

    Owned by the supplier record and read-only to the engine. Absent optional
    fields fall back to a 10% tax rate and ``{total, floor}`` rounding.
    """
    product_price_tax_type: TaxType = TaxType.INCLUDED
    commission_tax_type: TaxType = TaxType.INCLUDED
    tax_rate: float = Field(DEFAULT_TAX_RATE, ge=0, allow_inf_nan=False)
    participation_fee: Optional[FeeConfig] = None
    shipping_fee: Optional[FeeConfig] = None
    rounding_config: Optional[RoundingConfig] = None

    @field_validator("tax_rate", mode="before")
    @classmethod
    def default_tax_rate(cls, v: Any) -> Any:
        """A null tax rate means the default rate."""
        return DEFAULT_TAX_RATE if v is None else v

    model_config = {
        **CAMEL_CONFIG,
        "json_schema_extra": {
            "examples": [
                {
                    "productPriceTaxType": "excluded",
                    "commissionTaxType": "excluded",
                    "taxRate": 0.1,
                    "participationFee": {"amount": 3000, "taxType": "included"},
                    "roundingConfig": {"calculationType": "total", "roundingMode": "floor"}
                }
            ]
        }
    }


# ============================================================================
# Documents & Runs
# ============================================================================

class SourceDocument(BaseModel):
    """
    One file handed to the engine by the file-listing collaborator.

    ``content`` may be left empty when the engine is given a loader callable
    that fetches bytes on demand.
    """
    file_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    media_type: Optional[str] = None
    content: Optional[bytes] = Field(None, repr=False, exclude=True)

    model_config = CAMEL_CONFIG


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationRun(BaseModel):
    """
    Persisted import-log record tying a batch of documents to a verdict.

    The fee fields are run-level overrides; when set they take precedence over
    the SupplierConfig values for this run only.
    """
    run_id: str = Field(default_factory=lambda: uuid4().hex)
    batch_key: str = Field(..., description="Auction/batch the line items belong to")
    supplier_name: str = ""
    status: RunStatus = RunStatus.CREATED
    items_processed: int = 0
    items_succeeded: int = 0
    items_failed: int = 0
    errors: list[str] = Field(default_factory=list)
    invoice_amount: Optional[float] = None
    system_amount: Optional[int] = None
    amount_difference: Optional[float] = None
    has_amount_mismatch: bool = False
    participation_fee: Optional[float] = None
    participation_fee_tax_type: Optional[TaxType] = None
    shipping_fee: Optional[float] = None
    shipping_fee_tax_type: Optional[TaxType] = None
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    model_config = CAMEL_CONFIG


class FeeOverrides(BaseModel):
    """
    Edit of a run's fee overrides.

    Only fields explicitly present are applied; an explicit ``None`` clears the
    override so the SupplierConfig value is used again.
    """
    participation_fee: Optional[float] = Field(None, ge=0)
    participation_fee_tax_type: Optional[TaxType] = None
    shipping_fee: Optional[float] = Field(None, ge=0)
    shipping_fee_tax_type: Optional[TaxType] = None

    model_config = CAMEL_CONFIG


class AmountVerdict(BaseModel):
    """Comparison of the claimed invoice total against the system total."""
    invoice_amount: Optional[float] = None
    system_amount: Optional[int] = None
    amount_difference: Optional[float] = None
    has_amount_mismatch: bool = True

    model_config = CAMEL_CONFIG


class ImportResult(BaseModel):
    """
    Aggregate outcome of one run, as reported to CLI/API users.

    Always carries counts and the error list, even on partial success.
    """
    run_id: str
    status: RunStatus
    items_processed: int = Field(0, ge=0)
    items_succeeded: int = Field(0, ge=0)
    items_failed: int = Field(0, ge=0)
    errors: list[str] = Field(default_factory=list)
    invoice_amount: Optional[float] = None
    system_amount: Optional[int] = None
    amount_difference: Optional[float] = None
    has_amount_mismatch: bool = False

    @classmethod
    def from_run(cls, run: ReconciliationRun) -> "ImportResult":
        """Project a persisted run onto the user-facing result contract."""
        return cls(
            run_id=run.run_id,
            status=run.status,
            items_processed=run.items_processed,
            items_succeeded=run.items_succeeded,
            items_failed=run.items_failed,
            errors=list(run.errors),
            invoice_amount=run.invoice_amount,
            system_amount=run.system_amount,
            amount_difference=run.amount_difference,
            has_amount_mismatch=run.has_amount_mismatch,
        )

    model_config = {
        **CAMEL_CONFIG,
        "json_schema_extra": {
            "examples": [
                {
                    "runId": "5f0c2a7e9b1d4c3e8a6f0b2d4e6f8a10",
                    "status": "success",
                    "itemsProcessed": 2,
                    "itemsSucceeded": 2,
                    "itemsFailed": 0,
                    "errors": [],
                    "invoiceAmount": 24200,
                    "systemAmount": 24200,
                    "amountDifference": 0,
                    "hasAmountMismatch": False
                }
            ]
        }
    }
