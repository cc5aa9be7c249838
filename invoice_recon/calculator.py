"""
Tax and rounding calculator for recomputing a supplier's invoice total.

Suppliers round at different points of their own bookkeeping, so the
calculation order is configurable per supplier:
- per_item: each tax-excluded component is converted and rounded per line
- subtotal: price and commission subtotals are converted and rounded once each
- total: everything is converted without rounding and rounded once at the end

All arithmetic runs on ``Decimal`` built from the string form of each value,
so the same inputs always produce the same integer.
"""

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Optional

from .config import (
    DEFAULT_CALCULATION_TYPE,
    DEFAULT_ROUNDING_MODE,
    DEFAULT_TAX_RATE,
    CalculationType,
    RoundingMode,
    TaxType,
)
from .schemas import LineItem, ReconciliationRun, RoundingConfig, SupplierConfig


_DECIMAL_ROUNDING = {
    RoundingMode.FLOOR.value: ROUND_FLOOR,
    RoundingMode.CEIL.value: ROUND_CEILING,
    RoundingMode.ROUND.value: ROUND_HALF_UP,
}


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def apply_rounding(value, mode: str) -> int:
    """
    Round a monetary value to a whole currency unit.

    ``floor`` and ``ceil`` are the integer floor and ceiling; ``round`` is
    half-up (away from zero at .5). Unknown modes behave as ``floor``.
    """
    if not isinstance(value, Decimal):
        value = _dec(value)
    rounding = _DECIMAL_ROUNDING.get(mode, ROUND_FLOOR)
    return int(value.quantize(Decimal(1), rounding=rounding))


@dataclass
class EffectiveFees:
    """Participation and shipping fees after override/default resolution."""
    participation_fee: float = 0.0
    participation_fee_tax_type: str = TaxType.INCLUDED.value
    shipping_fee: float = 0.0
    shipping_fee_tax_type: str = TaxType.INCLUDED.value


# ============================================================================
# Calculation Orders
# ============================================================================

def _is_excluded(tax_type) -> bool:
    return tax_type == TaxType.EXCLUDED.value


def _with_tax(amount: Decimal, tax_type, multiplier: Decimal, mode: Optional[str]) -> Decimal:
    """Convert to tax-included form, rounding only when ``mode`` is given."""
    if not _is_excluded(tax_type):
        return amount
    converted = amount * multiplier
    if mode is None:
        return converted
    return Decimal(apply_rounding(converted, mode))


@dataclass
class _Context:
    prices: list[Decimal]
    commissions: list[Decimal]
    price_tax_type: str
    commission_tax_type: str
    multiplier: Decimal
    mode: str
    fees: EffectiveFees

    def fee_total(self, mode: Optional[str]) -> Decimal:
        return (
            _with_tax(_dec(self.fees.participation_fee), self.fees.participation_fee_tax_type, self.multiplier, mode)
            + _with_tax(_dec(self.fees.shipping_fee), self.fees.shipping_fee_tax_type, self.multiplier, mode)
        )


def _per_item(ctx: _Context) -> int:
    total = Decimal(0)
    for price, commission in zip(ctx.prices, ctx.commissions):
        total += _with_tax(price, ctx.price_tax_type, ctx.multiplier, ctx.mode)
        total += _with_tax(commission, ctx.commission_tax_type, ctx.multiplier, ctx.mode)
    return apply_rounding(total + ctx.fee_total(ctx.mode), ctx.mode)


def _subtotal(ctx: _Context) -> int:
    price_subtotal = _with_tax(sum(ctx.prices, Decimal(0)), ctx.price_tax_type, ctx.multiplier, ctx.mode)
    commission_subtotal = _with_tax(sum(ctx.commissions, Decimal(0)), ctx.commission_tax_type, ctx.multiplier, ctx.mode)
    return apply_rounding(price_subtotal + commission_subtotal + ctx.fee_total(ctx.mode), ctx.mode)


def _total(ctx: _Context) -> int:
    price_subtotal = _with_tax(sum(ctx.prices, Decimal(0)), ctx.price_tax_type, ctx.multiplier, None)
    commission_subtotal = _with_tax(sum(ctx.commissions, Decimal(0)), ctx.commission_tax_type, ctx.multiplier, None)
    return apply_rounding(price_subtotal + commission_subtotal + ctx.fee_total(None), ctx.mode)


CALCULATION_ORDERS: dict[str, Callable[[_Context], int]] = {
    CalculationType.PER_ITEM.value: _per_item,
    CalculationType.SUBTOTAL.value: _subtotal,
    CalculationType.TOTAL.value: _total,
}


# ============================================================================
# Public API
# ============================================================================

def resolve_rounding(config: SupplierConfig) -> RoundingConfig:
    """Supplier rounding policy, defaulting to ``{total, floor}``."""
    rounding = config.rounding_config or RoundingConfig()
    return RoundingConfig(
        calculation_type=rounding.calculation_type or DEFAULT_CALCULATION_TYPE,
        rounding_mode=rounding.rounding_mode or DEFAULT_ROUNDING_MODE,
    )


def calculate_total(
    items: Iterable[LineItem],
    config: SupplierConfig,
    participation_fee: float = 0.0,
    participation_fee_tax_type: str = TaxType.INCLUDED.value,
    shipping_fee: float = 0.0,
    shipping_fee_tax_type: str = TaxType.INCLUDED.value,
) -> int:
    """
    Recompute the tax-included total a supplier should bill.

    Args:
        items: Line items; each price is already the line amount
        config: Supplier tax types, rate and rounding policy
        participation_fee: Effective participation fee for the run
        participation_fee_tax_type: "included" or "excluded"
        shipping_fee: Effective shipping fee for the run
        shipping_fee_tax_type: "included" or "excluded"

    Returns:
        Whole-unit total; unknown calculation types use the ``total`` order
    """
    items = list(items)
    rounding = resolve_rounding(config)
    tax_rate = DEFAULT_TAX_RATE if config.tax_rate is None else config.tax_rate

    ctx = _Context(
        prices=[_dec(item.purchase_price) for item in items],
        commissions=[_dec(item.commission or 0) for item in items],
        price_tax_type=config.product_price_tax_type,
        commission_tax_type=config.commission_tax_type,
        multiplier=Decimal(1) + _dec(tax_rate),
        mode=rounding.rounding_mode,
        fees=EffectiveFees(
            participation_fee=participation_fee or 0.0,
            participation_fee_tax_type=participation_fee_tax_type or TaxType.INCLUDED.value,
            shipping_fee=shipping_fee or 0.0,
            shipping_fee_tax_type=shipping_fee_tax_type or TaxType.INCLUDED.value,
        ),
    )

    order = CALCULATION_ORDERS.get(rounding.calculation_type, _total)
    return order(ctx)


def resolve_fees(config: SupplierConfig, run: Optional[ReconciliationRun] = None) -> EffectiveFees:
    """
    Effective fees for one run.

    A non-null override on the run wins over the SupplierConfig fee; with
    neither, the fee is zero and tax-included.
    """
    fees = EffectiveFees()

    if run is not None and run.participation_fee is not None:
        fees.participation_fee = run.participation_fee
        fees.participation_fee_tax_type = run.participation_fee_tax_type or TaxType.INCLUDED.value
    elif config.participation_fee is not None:
        fees.participation_fee = config.participation_fee.amount
        fees.participation_fee_tax_type = config.participation_fee.tax_type

    if run is not None and run.shipping_fee is not None:
        fees.shipping_fee = run.shipping_fee
        fees.shipping_fee_tax_type = run.shipping_fee_tax_type or TaxType.INCLUDED.value
    elif config.shipping_fee is not None:
        fees.shipping_fee = config.shipping_fee.amount
        fees.shipping_fee_tax_type = config.shipping_fee.tax_type

    return fees


def calculate_system_amount(
    items: Iterable[LineItem],
    config: SupplierConfig,
    run: Optional[ReconciliationRun] = None,
) -> int:
    """Resolve fees for ``run`` and compute the system total; shared by import and recompute."""
    fees = resolve_fees(config, run)
    return calculate_total(
        items,
        config,
        participation_fee=fees.participation_fee,
        participation_fee_tax_type=fees.participation_fee_tax_type,
        shipping_fee=fees.shipping_fee,
        shipping_fee_tax_type=fees.shipping_fee_tax_type,
    )
