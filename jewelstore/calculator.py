"""
jewelstore/calculator.py

Price calculation for a jewelry product.

Single source of truth for pricing, used by:
- product create/update (prices stored on the product)
- the admin live preview
- bulk recalculation after metal/gemstone rate changes

Order of operations (every money value rounded to cents as soon as it is computed):
  1. metal lines:    raw = price/g * weight; wastage = raw * w%; making = flat | raw * m%
  2. gemstone lines: raw = price/ct * carats; line = raw + stone charges
  3. additional charges summed verbatim
  4. subtotal = all of the above
  5. GST on the lump subtotal -> calculated price
  6. discount (percentage capped at 100, flat capped at calculated price)
  7. final price floored at 0

IMPORTANT:
- Rounding at each step is intentional: rounding once at the end gives
  different totals on multi-line products.
- Pure and total: no I/O, never raises for data-shape reasons. Malformed
  numbers degrade to 0 through numeric.safe_number().
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .composition import DISCOUNT_PERCENTAGE, MAKING_FLAT, Discount
from .numeric import HUNDRED, ZERO, as_number, get_field, percent_of, round_price, safe_number
from .resolver import resolve_gemstone_prices, resolve_metal_prices


@dataclass(frozen=True)
class MetalCostBreakdown:
    variant_name: str
    part: str
    weight_in_grams: Decimal
    price_per_gram: Decimal
    raw_metal_cost: Decimal
    wastage_cost: Decimal
    making_cost: Decimal
    subtotal: Decimal

    def to_dict(self) -> dict:
        return {
            "variantName": self.variant_name,
            "part": self.part,
            "weightInGrams": as_number(self.weight_in_grams),
            "pricePerGram": as_number(self.price_per_gram),
            "rawMetalCost": as_number(self.raw_metal_cost),
            "wastageCost": as_number(self.wastage_cost),
            "makingCost": as_number(self.making_cost),
            "subtotal": as_number(self.subtotal),
        }


@dataclass(frozen=True)
class GemstoneCostBreakdown:
    variant_name: str
    position: str
    quantity: Decimal
    total_carat_weight: Decimal
    price_per_carat: Decimal
    raw_gemstone_cost: Decimal
    stone_charges: Decimal
    subtotal: Decimal

    def to_dict(self) -> dict:
        return {
            "variantName": self.variant_name,
            "position": self.position,
            "quantity": as_number(self.quantity),
            "totalCaratWeight": as_number(self.total_carat_weight),
            "pricePerCarat": as_number(self.price_per_carat),
            "rawGemstoneCost": as_number(self.raw_gemstone_cost),
            "stoneCharges": as_number(self.stone_charges),
            "subtotal": as_number(self.subtotal),
        }


@dataclass(frozen=True)
class PriceBreakdown:
    """Full derived pricing. Only calculated_price and final_price are ever persisted."""

    metals: list[MetalCostBreakdown] = field(default_factory=list)
    gemstones: list[GemstoneCostBreakdown] = field(default_factory=list)
    additional_charges: list[dict] = field(default_factory=list)

    total_metal_cost: Decimal = ZERO
    total_wastage_cost: Decimal = ZERO
    total_making_charges: Decimal = ZERO
    total_gemstone_cost: Decimal = ZERO
    total_stone_charges: Decimal = ZERO
    total_additional_charges: Decimal = ZERO

    subtotal: Decimal = ZERO
    gst_percentage: Decimal = ZERO
    gst_amount: Decimal = ZERO
    calculated_price: Decimal = ZERO

    discount: Discount | None = None
    discount_amount: Decimal = ZERO
    final_price: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "metals": [m.to_dict() for m in self.metals],
            "gemstones": [g.to_dict() for g in self.gemstones],
            "additionalCharges": [
                {"label": c["label"], "amount": as_number(c["amount"])} for c in self.additional_charges
            ],
            "totalMetalCost": as_number(self.total_metal_cost),
            "totalWastageCost": as_number(self.total_wastage_cost),
            "totalMakingCharges": as_number(self.total_making_charges),
            "totalGemstoneCost": as_number(self.total_gemstone_cost),
            "totalStoneCharges": as_number(self.total_stone_charges),
            "totalAdditionalCharges": as_number(self.total_additional_charges),
            "subtotal": as_number(self.subtotal),
            "gstPercentage": as_number(self.gst_percentage),
            "gstAmount": as_number(self.gst_amount),
            "calculatedPrice": as_number(self.calculated_price),
            "discount": self.discount.to_dict() if self.discount else None,
            "discountAmount": as_number(self.discount_amount),
            "finalPrice": as_number(self.final_price),
        }


def _metal_line(entry: Any) -> MetalCostBreakdown:
    price_per_gram = safe_number(get_field(entry, "price_per_gram"))
    weight = safe_number(get_field(entry, "weight_in_grams"))
    wastage_pct = safe_number(get_field(entry, "wastage_percentage"))
    making_charges = safe_number(get_field(entry, "making_charges"))

    raw_cost = round_price(price_per_gram * weight)
    wastage_cost = percent_of(raw_cost, wastage_pct)

    if get_field(entry, "making_charge_type", MAKING_FLAT) == MAKING_FLAT:
        making_cost = making_charges
    else:
        making_cost = percent_of(raw_cost, making_charges)

    return MetalCostBreakdown(
        variant_name=get_field(entry, "variant_name", ""),
        part=get_field(entry, "part", ""),
        weight_in_grams=weight,
        price_per_gram=price_per_gram,
        raw_metal_cost=raw_cost,
        wastage_cost=wastage_cost,
        making_cost=making_cost,
        subtotal=round_price(raw_cost + wastage_cost + making_cost),
    )


def _gemstone_line(entry: Any) -> GemstoneCostBreakdown:
    price_per_carat = safe_number(get_field(entry, "price_per_carat"))
    carats = safe_number(get_field(entry, "total_carat_weight"))
    stone_charges = safe_number(get_field(entry, "stone_charges"))

    raw_cost = round_price(price_per_carat * carats)

    return GemstoneCostBreakdown(
        variant_name=get_field(entry, "variant_name", ""),
        position=get_field(entry, "position", ""),
        quantity=safe_number(get_field(entry, "quantity"), 1),
        total_carat_weight=carats,
        price_per_carat=price_per_carat,
        raw_gemstone_cost=raw_cost,
        stone_charges=stone_charges,
        subtotal=round_price(raw_cost + stone_charges),
    )


def discount_amount_for(calculated_price: Decimal, discount: Discount | None) -> Decimal:
    """Discount in currency. Percentage is capped at 100%, flat at the calculated price."""
    if discount is None:
        return ZERO
    value = safe_number(discount.value)
    if value <= 0:
        return ZERO
    if discount.type == DISCOUNT_PERCENTAGE:
        return percent_of(calculated_price, min(value, HUNDRED))
    return min(value, calculated_price)


def calculate_price(
    metal_entries: Iterable[Any] = (),
    gemstone_entries: Iterable[Any] = (),
    additional_charges: Iterable[Any] = (),
    gst_percentage: Any = 0,
    discount: Any = None,
) -> PriceBreakdown:
    """
    Compute the full price breakdown.

    metal_entries / gemstone_entries are resolved lines (see resolver.py) or any
    objects/mappings with the same field names. additional_charges are
    {label, amount} items. discount is a Discount, a {type, value} mapping, or None.
    """
    metals = [_metal_line(entry) for entry in metal_entries]
    gemstones = [_gemstone_line(entry) for entry in gemstone_entries]
    charges = [
        {"label": get_field(c, "label", ""), "amount": safe_number(get_field(c, "amount"))}
        for c in additional_charges
    ]

    total_metal = sum((m.raw_metal_cost for m in metals), ZERO)
    total_wastage = sum((m.wastage_cost for m in metals), ZERO)
    total_making = sum((m.making_cost for m in metals), ZERO)
    total_gemstone = sum((g.raw_gemstone_cost for g in gemstones), ZERO)
    total_stone = sum((g.stone_charges for g in gemstones), ZERO)
    total_additional = sum((c["amount"] for c in charges), ZERO)

    subtotal = round_price(
        total_metal + total_wastage + total_making + total_gemstone + total_stone + total_additional
    )

    gst = safe_number(gst_percentage)
    gst_amount = percent_of(subtotal, gst)
    calculated_price = round_price(subtotal + gst_amount)

    discount = Discount.from_value(discount)
    discount_amount = discount_amount_for(calculated_price, discount)
    final_price = round_price(max(ZERO, calculated_price - discount_amount))

    return PriceBreakdown(
        metals=metals,
        gemstones=gemstones,
        additional_charges=charges,
        total_metal_cost=round_price(total_metal),
        total_wastage_cost=round_price(total_wastage),
        total_making_charges=round_price(total_making),
        total_gemstone_cost=round_price(total_gemstone),
        total_stone_charges=round_price(total_stone),
        total_additional_charges=round_price(total_additional),
        subtotal=subtotal,
        gst_percentage=gst,
        gst_amount=gst_amount,
        calculated_price=calculated_price,
        discount=discount,
        discount_amount=discount_amount,
        final_price=final_price,
    )


def resolve_gst_percentage(value: Any, default: Any) -> Decimal:
    """Stored GST rate, or the configured default when missing/invalid. Never fails."""
    return safe_number(value, safe_number(default))


def price_composition(
    catalog: Any,
    metal_entries: Iterable[Any] = (),
    gemstone_entries: Iterable[Any] = (),
    additional_charges: Iterable[Any] = (),
    gst_percentage: Any = 0,
    discount: Any = None,
):
    """
    Resolve stored composition lines against a catalog snapshot, then price them.

    Returns (breakdown, resolved_metals, resolved_gemstones). Raises the
    resolver's reference errors; pricing itself never raises.
    """
    metals = resolve_metal_prices(metal_entries, catalog.metals)
    gemstones = resolve_gemstone_prices(gemstone_entries, catalog.gemstones)
    breakdown = calculate_price(metals, gemstones, additional_charges, gst_percentage, discount)
    return breakdown, metals, gemstones
