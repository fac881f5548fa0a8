"""
jewelstore/recalculation.py

Bulk re-pricing of the whole catalog against current material rates.

Flow:
- load material catalog + product list once (snapshots)
- process products in fixed-size batches
- each product yields a ProductOutcome (unchanged / changed / failed)
- apply mode writes changed prices once per batch; dry run writes nothing
- outcomes are folded into a RecalculationSummary

IMPORTANT:
- One bad product never aborts the run. Only a failure to load the catalog or
  the product list propagates.
- No rollback: a batch already written stays written if a later batch fails
  or the run is cancelled.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from .calculator import price_composition, resolve_gst_percentage
from .errors import PricingReferenceError
from .numeric import as_number, get_field, is_valid_price, round_price, safe_number

logger = logging.getLogger(__name__)

UNCHANGED = "unchanged"
CHANGED = "changed"
FAILED = "failed"


@dataclass(frozen=True)
class PriceChange:
    product_id: Any
    name: str
    old_price: Decimal
    new_price: Decimal
    diff: Decimal
    calculated_price: Decimal

    def to_dict(self) -> dict:
        return {
            "productId": str(self.product_id),
            "name": self.name,
            "oldPrice": as_number(self.old_price),
            "newPrice": as_number(self.new_price),
            "diff": as_number(self.diff),
        }


@dataclass(frozen=True)
class FailedProduct:
    id: Any
    name: str
    reason: str

    def to_dict(self) -> dict:
        return {"id": str(self.id), "name": self.name, "reason": self.reason}


@dataclass(frozen=True)
class ProductOutcome:
    status: str
    product_id: Any
    change: PriceChange | None = None
    failure: FailedProduct | None = None

    @classmethod
    def unchanged(cls, product_id) -> "ProductOutcome":
        return cls(status=UNCHANGED, product_id=product_id)

    @classmethod
    def changed(cls, change: PriceChange) -> "ProductOutcome":
        return cls(status=CHANGED, product_id=change.product_id, change=change)

    @classmethod
    def failed(cls, product_id, name: str, reason: str) -> "ProductOutcome":
        return cls(status=FAILED, product_id=product_id, failure=FailedProduct(product_id, name, reason))


@dataclass
class RecalculationSummary:
    dry_run: bool
    processed: int = 0
    changes: list[PriceChange] = field(default_factory=list)
    failures: list[FailedProduct] = field(default_factory=list)
    cancelled: bool = False
    max_failures: int = 20
    max_changes: int = 50

    def record(self, outcome: ProductOutcome) -> "RecalculationSummary":
        if outcome.status == FAILED:
            self.failures.append(outcome.failure)
        else:
            self.processed += 1
            if outcome.status == CHANGED:
                self.changes.append(outcome.change)
        return self

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def prices_changed(self) -> int:
        return len(self.changes)

    @property
    def price_increases(self) -> int:
        return sum(1 for c in self.changes if c.diff > 0)

    @property
    def price_decreases(self) -> int:
        return sum(1 for c in self.changes if c.diff < 0)

    @property
    def total_diff(self) -> Decimal:
        return round_price(sum((c.diff for c in self.changes), Decimal("0")))

    def to_dict(self) -> dict:
        data = {
            "dryRun": self.dry_run,
            "processed": self.processed,
            "failed": self.failed,
            "failedProducts": [f.to_dict() for f in self.failures[: self.max_failures]],
            "pricesChanged": self.prices_changed,
            "priceIncreases": self.price_increases,
            "priceDecreases": self.price_decreases,
            "totalDiff": as_number(self.total_diff),
            "changes": [c.to_dict() for c in self.changes[: self.max_changes]],
        }
        if self.cancelled:
            data["cancelled"] = True
        return data


def reprice_product(product: Any, catalog: Any, default_gst: Any = 3) -> ProductOutcome:
    """Re-price one product against a catalog snapshot. Never raises."""
    product_id = get_field(product, "id")
    name = get_field(product, "name", "")
    metal_lines = get_field(product, "metal_composition", ())
    gemstone_lines = get_field(product, "gemstone_composition", ())

    if not metal_lines and not gemstone_lines:
        return ProductOutcome.unchanged(product_id)

    try:
        breakdown, _, _ = price_composition(
            catalog,
            metal_entries=metal_lines,
            gemstone_entries=gemstone_lines,
            additional_charges=get_field(product, "additional_charges", ()),
            gst_percentage=resolve_gst_percentage(get_field(product, "gst_percentage"), default_gst),
            discount=get_field(product, "discount"),
        )
    except PricingReferenceError as exc:
        logger.warning("Product %s (%s) not priced: %s", product_id, name, exc)
        return ProductOutcome.failed(product_id, name, str(exc))
    except Exception as exc:
        logger.exception("Unexpected error pricing product %s (%s)", product_id, name)
        return ProductOutcome.failed(product_id, name, str(exc) or "Unknown error")

    if not is_valid_price(breakdown.final_price) or not is_valid_price(breakdown.calculated_price):
        logger.error(
            "Invalid price for product %s (%s): calculated=%s final=%s",
            product_id, name, breakdown.calculated_price, breakdown.final_price,
        )
        return ProductOutcome.failed(product_id, name, "Invalid price calculated")

    old_price = safe_number(get_field(product, "final_price"), 0)
    new_price = breakdown.final_price
    if new_price == old_price:
        return ProductOutcome.unchanged(product_id)

    return ProductOutcome.changed(
        PriceChange(
            product_id=product_id,
            name=name,
            old_price=old_price,
            new_price=new_price,
            diff=round_price(new_price - old_price),
            calculated_price=breakdown.calculated_price,
        )
    )


class PriceRecalculator:
    """
    Batch orchestrator over a Catalog Store.

    The store needs load_catalog(), find_all_products() and
    bulk_update_prices({id: (calculated_price, final_price)}); see catalog.SqlCatalogStore.
    """

    def __init__(self, store, batch_size: int = 100, default_gst: Any = 3,
                 max_failures: int = 20, max_changes: int = 50):
        self.store = store
        self.batch_size = max(1, int(batch_size))
        self.default_gst = default_gst
        self.max_failures = max_failures
        self.max_changes = max_changes

    @classmethod
    def from_config(cls, config: Mapping, store) -> "PriceRecalculator":
        return cls(
            store,
            batch_size=config.get("PRICE_RECALC_BATCH_SIZE", 100),
            default_gst=config.get("DEFAULT_GST_PERCENTAGE", 3),
            max_failures=config.get("PRICE_RECALC_MAX_FAILURES", 20),
            max_changes=config.get("PRICE_RECALC_MAX_CHANGES", 50),
        )

    def recalculate_all(self, dry_run: bool = True, cancel_event=None) -> RecalculationSummary:
        """
        Re-price every product.

        cancel_event: optional threading.Event checked before each batch.
        """
        catalog = self.store.load_catalog()
        products = list(self.store.find_all_products())

        logger.info(
            "Price recalculation started (%s): %d products, batch size %d",
            "dry run" if dry_run else "apply", len(products), self.batch_size,
        )

        summary = RecalculationSummary(
            dry_run=dry_run, max_failures=self.max_failures, max_changes=self.max_changes
        )

        for start in range(0, len(products), self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                logger.warning("Price recalculation cancelled after %d products", start)
                break

            outcomes = [reprice_product(p, catalog, self.default_gst) for p in products[start:start + self.batch_size]]
            for outcome in outcomes:
                summary.record(outcome)

            if dry_run:
                continue

            writes = {
                o.change.product_id: (o.change.calculated_price, o.change.new_price)
                for o in outcomes
                if o.status == CHANGED
            }
            if writes:
                written = self.store.bulk_update_prices(writes)
                logger.info("Batch at offset %d: %d prices written", start, written)

        logger.info(
            "Price recalculation finished: processed=%d failed=%d changed=%d",
            summary.processed, summary.failed, summary.prices_changed,
        )
        return summary
