"""
jewelstore/validators.py

Request payload parsing for the JSON API.

Payloads use camelCase keys; parsed values use snake_case and the composition
value types from composition.py. Every problem raises ValidationError with the
offending field name (rendered as HTTP 400 by the app).
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .composition import (
    DEFAULT_WASTAGE_PERCENTAGE,
    DISCOUNT_PERCENTAGE,
    DISCOUNT_TYPES,
    MAKING_CHARGE_TYPES,
    MAKING_FLAT,
    ChargeEntry,
    Discount,
    GemstoneEntry,
    MetalEntry,
)
from .errors import ValidationError
from .numeric import HUNDRED

METAL_COLORS = ("Yellow", "White", "Rose", "Silver", "Grey", "Other")
GEMSTONE_TYPES = ("precious", "semi-precious", "organic")
GEMSTONE_ORIGINS = ("Natural", "Lab-Created", "Treated")
SETTINGS = ("prong", "bezel", "channel", "pave", "tension", "flush", "cluster", "other", "")

# Scales of the columns the parsed values are stored in
WEIGHT_PLACES = 3
MONEY_PLACES = 2
HARDNESS_PLACES = 1

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_STRIP.sub("-", (value or "").lower()).strip("-")


def parse_decimal(
    value: Any,
    field: str,
    *,
    required: bool = False,
    default: Decimal | None = None,
    minimum: Decimal | None = None,
    maximum: Decimal | None = None,
    positive: bool = False,
    places: int | None = None,
) -> Decimal | None:
    """
    Parse a JSON number (or numeric string) into Decimal.

    Accepts comma decimal separator. NaN/Infinity are rejected. With places,
    the value is rounded half-up to the scale of the column it is stored in
    before any bound is checked, so a price computed from it matches one
    recomputed from the stored row.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", field)
        return default

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field)

    try:
        number = Decimal(str(value).strip().replace(",", "."))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field)

    if not number.is_finite():
        raise ValidationError(f"{field} must be a finite number", field)
    if places is not None:
        try:
            number = number.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError(f"{field} is too large", field)
    if positive and number <= 0:
        raise ValidationError(f"{field} must be greater than 0", field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} cannot be less than {minimum}", field)
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} cannot be more than {maximum}", field)
    return number


def parse_int(value: Any, field: str, *, required: bool = False, default: int | None = None,
               minimum: int | None = None) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{field} is required", field)
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", field)
    try:
        number = int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be an integer", field)
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} cannot be less than {minimum}", field)
    return number


def _parse_str(value: Any, field: str, *, required: bool = False, max_length: int | None = None,
               default: str = "") -> str:
    text = (str(value) if value is not None else "").strip()
    if not text:
        if required:
            raise ValidationError(f"{field} is required", field)
        return default
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters", field)
    return text


def _parse_choice(value: Any, field: str, choices, default: str) -> str:
    if value is None or value == "":
        return default
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(c for c in choices if c)}", field)
    return value


def _parse_bool(value: Any, field: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be true or false", field)
    return value


def _parse_list(value: Any, field: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list", field)
    return value


def _require_object(value: Any, field: str) -> dict:
    if not isinstance(value, dict):
        raise ValidationError(f"{field} must be an object", field)
    return value


# ---------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------
def _money(value: Any, field: str, **kwargs) -> Decimal | None:
    return parse_decimal(value, field, places=MONEY_PLACES, **kwargs)


def parse_metal_entries(raw: Any) -> list[MetalEntry]:
    """
    Metal lines. Wastage, making charges and making-charge type left out of a
    line stay None here and are filled from the metal's defaults on resolve.
    """
    entries = []
    for i, item in enumerate(_parse_list(raw, "metalComposition")):
        prefix = f"metalComposition[{i}]"
        item = _require_object(item, prefix)
        metal_id = item.get("metal", item.get("metalId"))
        making_type = item.get("makingChargeType")
        entries.append(
            MetalEntry(
                metal_id=_parse_str(metal_id, f"{prefix}.metal", required=True),
                variant_index=parse_int(item.get("variantIndex"), f"{prefix}.variantIndex", default=0, minimum=0),
                variant_name=_parse_str(item.get("variantName"), f"{prefix}.variantName", max_length=100),
                weight_in_grams=parse_decimal(
                    item.get("weightInGrams"), f"{prefix}.weightInGrams",
                    required=True, positive=True, places=WEIGHT_PLACES,
                ),
                part=_parse_str(item.get("part"), f"{prefix}.part", max_length=100),
                wastage_percentage=_money(
                    item.get("wastagePercentage"), f"{prefix}.wastagePercentage",
                    minimum=Decimal("0"), maximum=HUNDRED,
                ),
                making_charges=_money(item.get("makingCharges"), f"{prefix}.makingCharges", minimum=Decimal("0")),
                making_charge_type=(
                    None if making_type in (None, "")
                    else _parse_choice(making_type, f"{prefix}.makingChargeType", MAKING_CHARGE_TYPES, MAKING_FLAT)
                ),
            )
        )
    return entries


def parse_gemstone_entries(raw: Any) -> list[GemstoneEntry]:
    entries = []
    for i, item in enumerate(_parse_list(raw, "gemstoneComposition")):
        prefix = f"gemstoneComposition[{i}]"
        item = _require_object(item, prefix)
        gemstone_id = item.get("gemstone", item.get("gemstoneId"))
        entries.append(
            GemstoneEntry(
                gemstone_id=_parse_str(gemstone_id, f"{prefix}.gemstone", required=True),
                variant_index=parse_int(item.get("variantIndex"), f"{prefix}.variantIndex", default=0, minimum=0),
                variant_name=_parse_str(item.get("variantName"), f"{prefix}.variantName", max_length=100),
                quantity=parse_int(item.get("quantity"), f"{prefix}.quantity", default=1, minimum=1),
                total_carat_weight=parse_decimal(
                    item.get("totalCaratWeight"), f"{prefix}.totalCaratWeight",
                    required=True, positive=True, places=WEIGHT_PLACES,
                ),
                stone_charges=_money(
                    item.get("stoneCharges"), f"{prefix}.stoneCharges", default=Decimal("0"), minimum=Decimal("0")
                ),
                setting=_parse_choice(item.get("setting"), f"{prefix}.setting", SETTINGS, ""),
                position=_parse_str(item.get("position"), f"{prefix}.position", max_length=100),
                certification=_parse_str(item.get("certification"), f"{prefix}.certification", default=None),
            )
        )
    return entries


def parse_additional_charges(raw: Any) -> list[ChargeEntry]:
    charges = []
    for i, item in enumerate(_parse_list(raw, "additionalCharges")):
        prefix = f"additionalCharges[{i}]"
        item = _require_object(item, prefix)
        charges.append(
            ChargeEntry(
                label=_parse_str(item.get("label"), f"{prefix}.label", required=True, max_length=100),
                amount=_money(item.get("amount"), f"{prefix}.amount", required=True, minimum=Decimal("0")),
            )
        )
    return charges


def parse_discount(raw: Any) -> Discount | None:
    """None, or {type: percentage|flat, value >= 0}. Percentage above 100 is rejected."""
    if raw is None:
        return None
    raw = _require_object(raw, "discount")
    kind = raw.get("type")
    if kind not in DISCOUNT_TYPES:
        raise ValidationError("discount.type must be percentage or flat", "discount.type")
    value = _money(raw.get("value"), "discount.value", required=True, minimum=Decimal("0"))
    if kind == DISCOUNT_PERCENTAGE and value > HUNDRED:
        raise ValidationError("Percentage discount cannot exceed 100", "discount.value")
    return Discount(type=kind, value=value)


def parse_gst(raw: Any, default: Any) -> Decimal:
    return _money(raw, "gstPercentage", default=Decimal(str(default)), minimum=Decimal("0"), maximum=HUNDRED)


def require_composition(metal_entries, gemstone_entries) -> None:
    if not metal_entries and not gemstone_entries:
        raise ValidationError("Product must have at least one metal or gemstone", "metalComposition")


def parse_pricing_payload(data: dict, default_gst: Any) -> dict:
    """Everything the calculator needs (preview endpoint)."""
    data = _require_object(data, "body")
    return {
        "metal_composition": parse_metal_entries(data.get("metalComposition")),
        "gemstone_composition": parse_gemstone_entries(data.get("gemstoneComposition")),
        "additional_charges": parse_additional_charges(data.get("additionalCharges")),
        "gst_percentage": parse_gst(data.get("gstPercentage"), default_gst),
        "discount": parse_discount(data.get("discount")),
    }


# ---------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------
def parse_product_payload(data: Any, default_gst: Any, *, partial: bool = False) -> dict:
    """
    Parse a product create/update body.

    partial=True (update): only keys present in the body are returned, so the
    caller can merge them over the stored product.
    """
    data = _require_object(data, "body")
    out: dict = {}

    def present(key: str) -> bool:
        return not partial or key in data

    if present("name"):
        out["name"] = _parse_str(data.get("name"), "name", required=True, max_length=200)
    if present("sku"):
        out["sku"] = _parse_str(data.get("sku"), "sku", required=True, max_length=50).upper()
    if "slug" in data:
        out["slug"] = slugify(_parse_str(data.get("slug"), "slug", required=True, max_length=220))
    elif not partial:
        out["slug"] = slugify(out["name"])
    if not partial and not out["slug"]:
        raise ValidationError("slug could not be derived from name", "slug")

    if present("description"):
        out["description"] = _parse_str(data.get("description"), "description", max_length=5000)
    if present("shortDescription"):
        out["short_description"] = _parse_str(data.get("shortDescription"), "shortDescription", max_length=300)
    if present("category"):
        out["category_id"] = parse_int(data.get("category"), "category")

    if present("metalComposition"):
        out["metal_composition"] = parse_metal_entries(data.get("metalComposition"))
    if present("gemstoneComposition"):
        out["gemstone_composition"] = parse_gemstone_entries(data.get("gemstoneComposition"))
    if present("additionalCharges"):
        out["additional_charges"] = parse_additional_charges(data.get("additionalCharges"))
    if present("gstPercentage"):
        out["gst_percentage"] = parse_gst(data.get("gstPercentage"), default_gst)
    if present("discount"):
        out["discount"] = parse_discount(data.get("discount"))

    if present("isActive"):
        out["is_active"] = _parse_bool(data.get("isActive"), "isActive", True)
    if present("isFeatured"):
        out["is_featured"] = _parse_bool(data.get("isFeatured"), "isFeatured", False)
    if present("inStock"):
        out["in_stock"] = _parse_bool(data.get("inStock"), "inStock", True)

    if not partial:
        require_composition(out["metal_composition"], out["gemstone_composition"])
    return out




# ---------------------------------------------------------------------
# Materials
# ---------------------------------------------------------------------
def _reject_variants(data: dict) -> None:
    if "variants" in data:
        raise ValidationError(
            "variants cannot be replaced; use the price and variants endpoints", "variants"
        )


def parse_metal_variant(item: Any, prefix: str = "variant") -> dict:
    item = _require_object(item, prefix)
    return {
        "name": _parse_str(item.get("name"), f"{prefix}.name", required=True, max_length=100),
        "purity": _money(
            item.get("purity"), f"{prefix}.purity", default=Decimal("0"), minimum=Decimal("0"), maximum=HUNDRED
        ),
        "price_per_gram": _money(item.get("pricePerGram"), f"{prefix}.pricePerGram", required=True, minimum=Decimal("0")),
        "is_active": _parse_bool(item.get("isActive"), f"{prefix}.isActive", True),
    }


def parse_gemstone_variant(item: Any, prefix: str = "variant") -> dict:
    item = _require_object(item, prefix)
    return {
        "name": _parse_str(item.get("name"), f"{prefix}.name", required=True, max_length=100),
        "cut": _parse_str(item.get("cut"), f"{prefix}.cut", max_length=50),
        "clarity": _parse_str(item.get("clarity"), f"{prefix}.clarity", max_length=20),
        "color": _parse_str(item.get("color"), f"{prefix}.color", max_length=20),
        "shape": _parse_str(item.get("shape"), f"{prefix}.shape", max_length=50),
        "origin": _parse_choice(item.get("origin"), f"{prefix}.origin", GEMSTONE_ORIGINS, "Natural"),
        "price_per_carat": _money(
            item.get("pricePerCarat"), f"{prefix}.pricePerCarat", required=True, minimum=Decimal("0")
        ),
        "certification": _parse_str(item.get("certification"), f"{prefix}.certification", max_length=100),
        "is_active": _parse_bool(item.get("isActive"), f"{prefix}.isActive", True),
    }


def _parse_variants(data: dict, parse_variant) -> list[dict]:
    variants = [
        parse_variant(v, f"variants[{i}]") for i, v in enumerate(_parse_list(data.get("variants"), "variants"))
    ]
    if not variants:
        raise ValidationError("At least one variant is required", "variants")
    return variants


def parse_metal_payload(data: Any, *, partial: bool = False) -> dict:
    """
    Metal create body, or with partial=True the fields of a metal update.

    The default wastage / making policy is what new product lines inherit
    when they leave those fields out.
    """
    data = _require_object(data, "body")
    out: dict = {}

    def present(key: str) -> bool:
        return not partial or key in data

    if present("name"):
        out["name"] = _parse_str(data.get("name"), "name", required=True, max_length=50)
    if present("code"):
        out["code"] = _parse_str(data.get("code"), "code", required=True, max_length=20).upper()
    if present("color"):
        out["color"] = _parse_choice(data.get("color"), "color", METAL_COLORS, "Other")
    if present("defaultWastagePercentage"):
        out["default_wastage_percentage"] = _money(
            data.get("defaultWastagePercentage"), "defaultWastagePercentage",
            default=DEFAULT_WASTAGE_PERCENTAGE, minimum=Decimal("0"), maximum=HUNDRED,
        )
    if present("defaultMakingChargeType"):
        out["default_making_charge_type"] = _parse_choice(
            data.get("defaultMakingChargeType"), "defaultMakingChargeType", MAKING_CHARGE_TYPES, MAKING_FLAT
        )
    if present("defaultMakingCharges"):
        out["default_making_charges"] = _money(
            data.get("defaultMakingCharges"), "defaultMakingCharges", default=Decimal("0"), minimum=Decimal("0")
        )

    if partial:
        _reject_variants(data)
    else:
        out["variants"] = _parse_variants(data, parse_metal_variant)
    return out


def parse_gemstone_payload(data: Any, *, partial: bool = False) -> dict:
    data = _require_object(data, "body")
    out: dict = {}

    def present(key: str) -> bool:
        return not partial or key in data

    if present("name"):
        out["name"] = _parse_str(data.get("name"), "name", required=True, max_length=50)
    if present("type"):
        out["type"] = _parse_choice(data.get("type"), "type", GEMSTONE_TYPES, "precious")
    if present("hardness"):
        out["hardness"] = parse_decimal(
            data.get("hardness"), "hardness", minimum=Decimal("1"), maximum=Decimal("10"), places=HARDNESS_PLACES
        )

    if partial:
        _reject_variants(data)
    else:
        out["variants"] = _parse_variants(data, parse_gemstone_variant)
    return out


def parse_price_update(data: Any) -> tuple[int, Decimal]:
    """{variantIndex, newPrice} for a material rate change."""
    data = _require_object(data, "body")
    index = parse_int(data.get("variantIndex"), "variantIndex", required=True, minimum=0)
    price = _money(data.get("newPrice"), "newPrice", required=True, minimum=Decimal("0"))
    return index, price


def parse_category_payload(data: Any, *, partial: bool = False) -> dict:
    data = _require_object(data, "body")
    out: dict = {}

    if not partial or "name" in data:
        out["name"] = _parse_str(data.get("name"), "name", required=True, max_length=50)
    if "slug" in data:
        out["slug"] = slugify(_parse_str(data.get("slug"), "slug", required=True))
    elif not partial:
        out["slug"] = slugify(out["name"])
    if "slug" in out and not out["slug"]:
        raise ValidationError("slug could not be derived from name", "slug")
    if not partial or "displayOrder" in data:
        out["display_order"] = parse_int(data.get("displayOrder"), "displayOrder", default=0)
    if not partial or "isActive" in data:
        out["is_active"] = _parse_bool(data.get("isActive"), "isActive", True)
    return out
