"""
jewelstore/composition.py

Plain value types for what a product is made of, as they cross the pricing
engine boundary (request payloads, catalog snapshots, resolver input).

ORM rows in models.py carry the same field names, so the resolver can accept
either.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .numeric import as_number, get_field, safe_number

MAKING_FLAT = "flat"
MAKING_PERCENTAGE = "percentage"
MAKING_CHARGE_TYPES = (MAKING_FLAT, MAKING_PERCENTAGE)

DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_FLAT = "flat"
DISCOUNT_TYPES = (DISCOUNT_PERCENTAGE, DISCOUNT_FLAT)

DEFAULT_WASTAGE_PERCENTAGE = Decimal("3")


@dataclass(frozen=True)
class MetalEntry:
    metal_id: str
    variant_index: int
    variant_name: str
    weight_in_grams: Decimal
    part: str = ""
    # None: inherit the metal's default when the line is resolved
    wastage_percentage: Decimal | None = None
    making_charges: Decimal | None = None
    making_charge_type: str | None = None


@dataclass(frozen=True)
class GemstoneEntry:
    gemstone_id: str
    variant_index: int
    variant_name: str
    quantity: int
    total_carat_weight: Decimal
    stone_charges: Decimal = Decimal("0")
    setting: str = ""
    position: str = ""
    certification: str | None = None


@dataclass(frozen=True)
class ChargeEntry:
    """Free-form extra cost added verbatim to the subtotal."""

    label: str
    amount: Decimal


@dataclass(frozen=True)
class Discount:
    type: str
    value: Decimal

    @classmethod
    def from_value(cls, raw: Any) -> "Discount | None":
        """Build from a Discount, a mapping/object with type+value, or None."""
        if raw is None or isinstance(raw, Discount):
            return raw
        kind = get_field(raw, "type")
        if kind not in DISCOUNT_TYPES:
            return None
        return cls(type=kind, value=safe_number(get_field(raw, "value")))

    def to_dict(self) -> dict:
        return {"type": self.type, "value": as_number(self.value)}


# ---------------------------------------------------------------------
# Catalog snapshots (immutable for the duration of a pricing run)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class VariantSnapshot:
    position: int
    name: str
    unit_price: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class LineDefaults:
    """A metal's wastage and making-charge policy for lines that do not set their own."""

    wastage_percentage: Decimal = DEFAULT_WASTAGE_PERCENTAGE
    making_charges: Decimal = Decimal("0")
    making_charge_type: str = MAKING_FLAT


@dataclass(frozen=True)
class MaterialSnapshot:
    """A Metal or Gemstone with its variants, keyed by append-only position."""

    id: str
    name: str
    variants: tuple[VariantSnapshot, ...] = ()
    line_defaults: LineDefaults | None = None

    def variant_at(self, position: int) -> VariantSnapshot | None:
        for variant in self.variants:
            if variant.position == position:
                return variant
        return None


@dataclass(frozen=True)
class CatalogSnapshot:
    metals: Mapping[str, MaterialSnapshot] = field(default_factory=dict)
    gemstones: Mapping[str, MaterialSnapshot] = field(default_factory=dict)
