"""
jewelstore/resolver.py

Material price resolution.

Turns a product's stored composition lines into calculation-ready lines that
carry the *current* unit price of the referenced variant. The resolver never
queries storage: it works against a catalog snapshot (material id -> material)
loaded once by the caller.

IMPORTANT:
- A dangling reference is fatal for the product being resolved
  (MaterialNotFoundError / VariantNotFoundError). Callers decide whether that
  fails a request or becomes a per-product failure in a batch run.
- The stored variant_name wins over the variant's current name: products keep
  the label they were composed with.
- A metal line without its own wastage / making charges / making-charge type
  takes the metal's line_defaults (or the global defaults when the metal has none).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .composition import LineDefaults, MAKING_CHARGE_TYPES
from .errors import MaterialNotFoundError, VariantNotFoundError
from .numeric import get_field, safe_number


@dataclass(frozen=True)
class ResolvedMetalEntry:
    metal_id: str
    variant_index: int
    variant_name: str
    weight_in_grams: Decimal
    part: str
    wastage_percentage: Decimal
    making_charges: Decimal
    making_charge_type: str
    price_per_gram: Decimal


@dataclass(frozen=True)
class ResolvedGemstoneEntry:
    gemstone_id: str
    variant_index: int
    variant_name: str
    quantity: Decimal
    total_carat_weight: Decimal
    setting: str
    position: str
    certification: str | None
    stone_charges: Decimal
    price_per_carat: Decimal


def _variant_index(entry: Any) -> int | None:
    """Sanitized variant index; None when it is missing or cannot address any variant."""
    raw = get_field(entry, "variant_index")
    if raw is None:
        return None
    index = safe_number(raw, Decimal("NaN"))
    if not index.is_finite() or index != index.to_integral_value():
        return None
    return int(index)


def _variant_of(material: Any, index: int | None) -> Any:
    if index is None:
        return None
    variant_at = getattr(material, "variant_at", None)
    if callable(variant_at):
        return variant_at(index)
    variants = get_field(material, "variants", [])
    if 0 <= index < len(variants):
        return variants[index]
    return None


def _lookup(entry: Any, ref_field: str, catalog: Mapping[str, Any], kind: str) -> tuple[Any, Any, int | None]:
    """Find the referenced material and variant or raise a reference error."""
    ref = get_field(entry, ref_field)
    if ref is None or str(ref).strip() == "":
        raise MaterialNotFoundError(
            f"{kind.capitalize()} entry has no {kind} reference",
            material_kind=kind,
            material_id=None,
        )

    material_id = str(ref)
    material = catalog.get(material_id)
    if material is None:
        raise MaterialNotFoundError(
            f"{kind.capitalize()} not found: {material_id}",
            material_kind=kind,
            material_id=material_id,
        )

    index = _variant_index(entry)
    variant = _variant_of(material, index)
    if variant is None:
        shown = index if index is not None else get_field(entry, "variant_index")
        raise VariantNotFoundError(
            f"{kind.capitalize()} variant index {shown} not found for {kind} {material_id}",
            material_kind=kind,
            material_id=material_id,
            variant_index=index,
        )
    return material_id, variant, index


def _line_defaults(metal: Any) -> LineDefaults:
    defaults = get_field(metal, "line_defaults")
    return defaults if isinstance(defaults, LineDefaults) else LineDefaults()


def _unit_price(variant: Any, name: str) -> Decimal:
    # Snapshots expose a uniform unit_price; raw mappings/ORM rows use the named column.
    price = get_field(variant, "unit_price")
    if price is None:
        price = get_field(variant, name)
    return safe_number(price)


def resolve_metal_prices(entries: Iterable[Any], metals_by_id: Mapping[str, Any]) -> list[ResolvedMetalEntry]:
    """
    Resolve each metal composition line against the metal catalog.

    Raises:
        MaterialNotFoundError: metal id missing from metals_by_id (or no reference).
        VariantNotFoundError: variant_index does not exist on that metal.
    """
    resolved = []
    for entry in entries:
        metal_id, variant, index = _lookup(entry, "metal_id", metals_by_id, "metal")
        defaults = _line_defaults(metals_by_id[metal_id])

        making_type = get_field(entry, "making_charge_type", defaults.making_charge_type)
        if making_type not in MAKING_CHARGE_TYPES:
            making_type = defaults.making_charge_type

        resolved.append(
            ResolvedMetalEntry(
                metal_id=metal_id,
                variant_index=index,
                variant_name=get_field(entry, "variant_name") or get_field(variant, "name", ""),
                weight_in_grams=safe_number(get_field(entry, "weight_in_grams")),
                part=get_field(entry, "part", ""),
                wastage_percentage=safe_number(get_field(entry, "wastage_percentage"), defaults.wastage_percentage),
                making_charges=safe_number(get_field(entry, "making_charges"), defaults.making_charges),
                making_charge_type=making_type,
                price_per_gram=_unit_price(variant, "price_per_gram"),
            )
        )
    return resolved


def resolve_gemstone_prices(
    entries: Iterable[Any], gemstones_by_id: Mapping[str, Any]
) -> list[ResolvedGemstoneEntry]:
    """Resolve each gemstone composition line against the gemstone catalog. Same failure policy as metals."""
    resolved = []
    for entry in entries:
        gemstone_id, variant, index = _lookup(entry, "gemstone_id", gemstones_by_id, "gemstone")

        resolved.append(
            ResolvedGemstoneEntry(
                gemstone_id=gemstone_id,
                variant_index=index,
                variant_name=get_field(entry, "variant_name") or get_field(variant, "name", ""),
                quantity=safe_number(get_field(entry, "quantity"), 1),
                total_carat_weight=safe_number(get_field(entry, "total_carat_weight")),
                setting=get_field(entry, "setting", ""),
                position=get_field(entry, "position", ""),
                certification=get_field(entry, "certification"),
                stone_charges=safe_number(get_field(entry, "stone_charges")),
                price_per_carat=_unit_price(variant, "price_per_carat"),
            )
        )
    return resolved
