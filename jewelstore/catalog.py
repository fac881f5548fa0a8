"""
jewelstore/catalog.py

Catalog Store boundary used by the pricing engine.

The engine never touches ORM rows directly during a run: materials and products
are copied into immutable snapshots first, so a long recalculation sees one
consistent view and writes only through bulk_update_prices().
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from .composition import (
    CatalogSnapshot,
    ChargeEntry,
    Discount,
    GemstoneEntry,
    LineDefaults,
    MaterialSnapshot,
    MetalEntry,
    VariantSnapshot,
)
from .extensions import db
from .models import Gemstone, Metal, Product

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProductRecord:
    """Detached pricing view of a product."""

    id: int
    name: str
    metal_composition: tuple[MetalEntry, ...] = ()
    gemstone_composition: tuple[GemstoneEntry, ...] = ()
    additional_charges: tuple[ChargeEntry, ...] = ()
    gst_percentage: Decimal | None = None
    discount: Discount | None = None
    calculated_price: Decimal | None = None
    final_price: Decimal | None = None


def _int_ids(ids: Iterable) -> list[int]:
    out = []
    for raw in ids:
        try:
            out.append(int(raw))
        except (TypeError, ValueError):
            continue
    return out


def material_snapshot(material, price_attr: str) -> MaterialSnapshot:
    line_defaults = None
    if isinstance(material, Metal):
        line_defaults = LineDefaults(
            wastage_percentage=material.default_wastage_percentage,
            making_charges=material.default_making_charges,
            making_charge_type=material.default_making_charge_type,
        )
    return MaterialSnapshot(
        id=str(material.id),
        name=material.name,
        variants=tuple(
            VariantSnapshot(
                position=v.position,
                name=v.name,
                unit_price=getattr(v, price_attr),
                is_active=v.is_active,
            )
            for v in material.variants
        ),
        line_defaults=line_defaults,
    )


def product_record(product: Product) -> ProductRecord:
    return ProductRecord(
        id=product.id,
        name=product.name,
        metal_composition=tuple(
            MetalEntry(
                metal_id=str(line.metal_id),
                variant_index=line.variant_index,
                variant_name=line.variant_name,
                weight_in_grams=line.weight_in_grams,
                part=line.part,
                wastage_percentage=line.wastage_percentage,
                making_charges=line.making_charges,
                making_charge_type=line.making_charge_type,
            )
            for line in product.metal_composition
        ),
        gemstone_composition=tuple(
            GemstoneEntry(
                gemstone_id=str(line.gemstone_id),
                variant_index=line.variant_index,
                variant_name=line.variant_name,
                quantity=line.quantity,
                total_carat_weight=line.total_carat_weight,
                stone_charges=line.stone_charges,
                setting=line.setting,
                position=line.position,
                certification=line.certification,
            )
            for line in product.gemstone_composition
        ),
        additional_charges=tuple(ChargeEntry(label=c.label, amount=c.amount) for c in product.additional_charges),
        gst_percentage=product.gst_percentage,
        discount=product.discount,
        calculated_price=product.calculated_price,
        final_price=product.final_price,
    )


class SqlCatalogStore:
    """Catalog Store backed by the application database."""

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def load_catalog(self, metal_ids: Iterable | None = None, gemstone_ids: Iterable | None = None) -> CatalogSnapshot:
        """Active (not soft-deleted) metals and gemstones, optionally restricted to id sets."""
        metal_q = select(Metal).options(selectinload(Metal.variants)).where(Metal.is_deleted.is_(False))
        gem_q = select(Gemstone).options(selectinload(Gemstone.variants)).where(Gemstone.is_deleted.is_(False))

        if metal_ids is not None:
            metal_q = metal_q.where(Metal.id.in_(_int_ids(metal_ids)))
        if gemstone_ids is not None:
            gem_q = gem_q.where(Gemstone.id.in_(_int_ids(gemstone_ids)))

        metals = {str(m.id): material_snapshot(m, "price_per_gram") for m in self.session.scalars(metal_q)}
        gemstones = {str(g.id): material_snapshot(g, "price_per_carat") for g in self.session.scalars(gem_q)}

        logger.debug("Catalog loaded: %d metals, %d gemstones", len(metals), len(gemstones))
        return CatalogSnapshot(metals=metals, gemstones=gemstones)

    def _product_query(self):
        return select(Product).options(
            selectinload(Product.metal_composition),
            selectinload(Product.gemstone_composition),
            selectinload(Product.additional_charges),
        )

    def find_all_products(self) -> list[ProductRecord]:
        rows = self.session.scalars(self._product_query().order_by(Product.id.asc()))
        return [product_record(p) for p in rows]

    def bulk_update_prices(self, prices: dict) -> int:
        """Set (calculated_price, final_price) for each product id in one UPDATE, then commit."""
        if not prices:
            return 0
        now = datetime.utcnow()
        rows = [
            {"id": int(pid), "calculated_price": calc, "final_price": final, "updated_at": now}
            for pid, (calc, final) in prices.items()
        ]
        self.session.execute(update(Product), rows)
        self.session.commit()
        return len(rows)
