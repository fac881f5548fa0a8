"""
jewelstore/seed.py

Seed the material catalog and storefront categories.

Rules:
- Safe to run multiple times (idempotent).
- Metals match by code, gemstones by name, categories by slug.
- Existing rows are left alone: rates are owned by admins once seeded.

Prices are approximate market rates in INR (per gram / per carat).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from .extensions import db
from .models import Category, Gemstone, Metal

logger = logging.getLogger(__name__)


DEFAULT_METALS = [
    # name, code, color, wastage %, making (flat), [(variant, purity, price/g)]
    ("Gold", "GOLD", "Yellow", "3", "500", [
        ("24K Gold", "99.9", "7500"),
        ("22K Gold", "91.6", "6900"),
        ("18K Gold", "75.0", "5625"),
        ("14K Gold", "58.5", "4400"),
    ]),
    ("White Gold", "WHITE_GOLD", "White", "3", "600", [
        ("18K White Gold", "75.0", "5800"),
        ("14K White Gold", "58.5", "4550"),
    ]),
    ("Rose Gold", "ROSE_GOLD", "Rose", "3", "600", [
        ("18K Rose Gold", "75.0", "5700"),
        ("14K Rose Gold", "58.5", "4500"),
    ]),
    ("Silver", "SILVER", "Silver", "5", "200", [
        ("999 Fine Silver", "99.9", "95"),
        ("925 Sterling Silver", "92.5", "85"),
    ]),
    ("Platinum", "PLATINUM", "Grey", "2", "800", [
        ("950 Platinum", "95.0", "3200"),
        ("900 Platinum", "90.0", "3050"),
        ("850 Platinum", "85.0", "2900"),
    ]),
    ("Palladium", "PALLADIUM", "Grey", "2", "700", [
        ("950 Palladium", "95.0", "4000"),
    ]),
    ("Titanium", "TITANIUM", "Grey", "1", "300", [
        ("Grade 5 Titanium", "100", "25"),
    ]),
    # Mangalsutra / traditional pieces
    ("Black Beads", "BLACK_BEADS", "Other", "0", "0", [
        ("Karimani / Black Beads", "0", "5"),
    ]),
    # Kundan / Polki filling
    ("Lac / Resin", "LAC", "Other", "0", "0", [
        ("Lac Filling", "0", "2"),
    ]),
]


DEFAULT_GEMSTONES = [
    # name, type, hardness, [(variant, cut, clarity, color, shape, origin, price/ct)]
    ("Diamond", "precious", "10", [
        ("Round Brilliant VS1 G", "Excellent", "VS1", "G", "Round", "Natural", "50000"),
        ("Round Brilliant SI1 H", "Very Good", "SI1", "H", "Round", "Natural", "35000"),
        ("Lab Round VS1 F", "Excellent", "VS1", "F", "Round", "Lab-Created", "15000"),
    ]),
    ("Ruby", "precious", "9", [
        ("Burmese Ruby", "Mixed", "", "Pigeon Blood", "Oval", "Natural", "40000"),
        ("Heated Ruby", "Mixed", "", "Red", "Oval", "Treated", "8000"),
    ]),
    ("Sapphire", "precious", "9", [
        ("Ceylon Blue Sapphire", "Mixed", "", "Blue", "Oval", "Natural", "30000"),
        ("Yellow Sapphire", "Mixed", "", "Yellow", "Cushion", "Natural", "12000"),
    ]),
    ("Emerald", "precious", "7.5", [
        ("Colombian Emerald", "Emerald", "", "Green", "Emerald", "Natural", "35000"),
        ("Zambian Emerald", "Emerald", "", "Green", "Oval", "Natural", "18000"),
    ]),
    ("Pearl", "organic", "2.5", [
        ("South Sea Pearl", "", "", "White", "Round", "Natural", "6000"),
        ("Freshwater Pearl", "", "", "White", "Round", "Natural", "800"),
    ]),
]


DEFAULT_CATEGORIES = [
    # name, slug
    ("Rings", "rings"),
    ("Necklaces", "necklaces"),
    ("Earrings", "earrings"),
    ("Bracelets", "bracelets"),
    ("Bangles", "bangles"),
    ("Pendants", "pendants"),
    ("Mangalsutra", "mangalsutra"),
]


def seed_catalog() -> dict:
    """
    Create default metals, gemstones and categories if they don't exist.

    Returns counts of created rows per kind.
    """
    created = {"metals": 0, "gemstones": 0, "categories": 0}

    for name, code, color, wastage, making, variants in DEFAULT_METALS:
        if Metal.query.filter_by(code=code).first():
            continue
        metal = Metal(
            name=name,
            code=code,
            color=color,
            default_wastage_percentage=Decimal(wastage),
            default_making_charge_type="flat",
            default_making_charges=Decimal(making),
        )
        for variant_name, purity, price in variants:
            metal.append_variant(name=variant_name, purity=Decimal(purity), price_per_gram=Decimal(price))
        db.session.add(metal)
        created["metals"] += 1

    for name, kind, hardness, variants in DEFAULT_GEMSTONES:
        if Gemstone.query.filter_by(name=name).first():
            continue
        gemstone = Gemstone(name=name, type=kind, hardness=Decimal(hardness))
        for variant_name, cut, clarity, color, shape, origin, price in variants:
            gemstone.append_variant(
                name=variant_name,
                cut=cut,
                clarity=clarity,
                color=color,
                shape=shape,
                origin=origin,
                price_per_carat=Decimal(price),
            )
        db.session.add(gemstone)
        created["gemstones"] += 1

    for order, (name, slug) in enumerate(DEFAULT_CATEGORIES):
        if Category.query.filter_by(slug=slug).first():
            continue
        db.session.add(Category(name=name, slug=slug, display_order=order))
        created["categories"] += 1

    db.session.commit()
    logger.info("Catalog seeded: %s", created)
    return created
