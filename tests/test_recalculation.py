"""
Tests for jewelstore.recalculation against an in-memory store.

The fake store counts writes so dry-run purity and per-batch writes can be
asserted without a database.
"""

import threading
from decimal import Decimal

import pytest

from jewelstore import recalculation
from jewelstore.calculator import PriceBreakdown
from jewelstore.catalog import ProductRecord
from jewelstore.composition import (
    CatalogSnapshot,
    ChargeEntry,
    Discount,
    GemstoneEntry,
    MaterialSnapshot,
    MetalEntry,
    VariantSnapshot,
)
from jewelstore.recalculation import (
    CHANGED,
    FAILED,
    UNCHANGED,
    PriceRecalculator,
    ProductOutcome,
    RecalculationSummary,
    reprice_product,
)


class FakeStore:
    def __init__(self, catalog, products):
        self.catalog = catalog
        self.products = {p.id: p for p in products}
        self.write_calls = []

    def load_catalog(self, metal_ids=None, gemstone_ids=None):
        return self.catalog

    def find_all_products(self):
        return list(self.products.values())

    def bulk_update_prices(self, prices):
        self.write_calls.append(dict(prices))
        for pid, (calc, final) in prices.items():
            old = self.products[pid]
            self.products[pid] = ProductRecord(
                id=old.id,
                name=old.name,
                metal_composition=old.metal_composition,
                gemstone_composition=old.gemstone_composition,
                additional_charges=old.additional_charges,
                gst_percentage=old.gst_percentage,
                discount=old.discount,
                calculated_price=calc,
                final_price=final,
            )
        return len(prices)


class FailingCatalogStore(FakeStore):
    def load_catalog(self, metal_ids=None, gemstone_ids=None):
        raise ConnectionError("catalog unavailable")


def gold_catalog(price_22k="6900"):
    return CatalogSnapshot(
        metals={
            "1": MaterialSnapshot(
                id="1",
                name="Gold",
                variants=(
                    VariantSnapshot(position=0, name="24K Gold", unit_price=Decimal("7500")),
                    VariantSnapshot(position=1, name="22K Gold", unit_price=Decimal(price_22k)),
                ),
            )
        },
        gemstones={
            "7": MaterialSnapshot(
                id="7",
                name="Diamond",
                variants=(VariantSnapshot(position=0, name="VS1", unit_price=Decimal("50000")),),
            )
        },
    )


def ring(pid, final_price="0", variant_index=1, metal_id="1", **extra):
    return ProductRecord(
        id=pid,
        name=f"Ring {pid}",
        metal_composition=(
            MetalEntry(
                metal_id=metal_id,
                variant_index=variant_index,
                variant_name="22K Gold",
                weight_in_grams=Decimal("5"),
                making_charges=Decimal("500"),
            ),
        ),
        gst_percentage=extra.pop("gst_percentage", Decimal("3")),
        final_price=Decimal(final_price),
        **extra,
    )


RING_PRICE = Decimal("37116.05")


@pytest.fixture
def nan_pricing(monkeypatch):
    """Make price_composition return a non-finite breakdown."""
    def fake_price_composition(catalog, **kwargs):
        breakdown = PriceBreakdown(calculated_price=Decimal("NaN"), final_price=Decimal("NaN"))
        return breakdown, [], []

    monkeypatch.setattr(recalculation, "price_composition", fake_price_composition)


# =============================================================================
# SINGLE PRODUCT
# =============================================================================

class TestRepriceProduct:
    def test_changed(self):
        outcome = reprice_product(ring(1, "30000"), gold_catalog())
        assert outcome.status == CHANGED
        assert outcome.change.old_price == Decimal("30000")
        assert outcome.change.new_price == RING_PRICE
        assert outcome.change.diff == Decimal("7116.05")
        assert outcome.change.calculated_price == RING_PRICE

    def test_unchanged(self):
        assert reprice_product(ring(1, "37116.05"), gold_catalog()).status == UNCHANGED

    def test_no_composition_is_unchanged(self):
        outcome = reprice_product(ProductRecord(id=5, name="Gift card"), gold_catalog())
        assert outcome.status == UNCHANGED

    def test_dangling_variant_fails(self):
        outcome = reprice_product(ring(3, variant_index=4), gold_catalog())
        assert outcome.status == FAILED
        assert outcome.failure.id == 3
        assert outcome.failure.name == "Ring 3"
        assert "variant index 4" in outcome.failure.reason

    def test_deleted_metal_fails(self):
        outcome = reprice_product(ring(3, metal_id="2"), gold_catalog())
        assert outcome.status == FAILED
        assert outcome.failure.reason == "Metal not found: 2"

    def test_invalid_gst_uses_default(self):
        outcome = reprice_product(ring(1, gst_percentage="oops"), gold_catalog(), default_gst="3")
        assert outcome.change.new_price == RING_PRICE

    def test_missing_stored_price_counts_as_zero(self):
        product = ring(1)
        product = ProductRecord(**{**product.__dict__, "final_price": None})
        outcome = reprice_product(product, gold_catalog())
        assert outcome.change.old_price == Decimal("0")
        assert outcome.change.diff == RING_PRICE

    def test_discount_and_charges_are_applied(self):
        product = ring(
            1,
            additional_charges=(ChargeEntry("Hallmark", Decimal("0")),),
            discount=Discount("percentage", Decimal("10")),
        )
        assert reprice_product(product, gold_catalog()).change.new_price == Decimal("33404.44")

    def test_unexpected_error_is_isolated(self):
        class BrokenCatalog:
            @property
            def metals(self):
                raise RuntimeError("boom")

        outcome = reprice_product(ring(1), BrokenCatalog())
        assert outcome.status == FAILED
        assert outcome.failure.reason == "boom"

    def test_non_finite_price_fails(self, nan_pricing):
        outcome = reprice_product(ring(4, "30000"), gold_catalog())
        assert outcome.status == FAILED
        assert outcome.failure.id == 4
        assert outcome.failure.reason == "Invalid price calculated"

    def test_gemstone_only_product(self):
        product = ProductRecord(
            id=9,
            name="Solitaire",
            gemstone_composition=(
                GemstoneEntry(
                    gemstone_id="7", variant_index=0, variant_name="VS1", quantity=1,
                    total_carat_weight=Decimal("0.5"), stone_charges=Decimal("1200"),
                ),
            ),
            gst_percentage=Decimal("3"),
            final_price=Decimal("0"),
        )
        assert reprice_product(product, gold_catalog()).change.new_price == Decimal("26986.00")


# =============================================================================
# SUMMARY FOLD
# =============================================================================

class TestSummary:
    def test_counts_and_truncation(self):
        summary = RecalculationSummary(dry_run=True, max_failures=2, max_changes=3)
        for i in range(5):
            summary.record(ProductOutcome.failed(i, f"bad {i}", "nope"))
        for i in range(4):
            summary.record(reprice_product(ring(100 + i, "37000"), gold_catalog()))
        summary.record(reprice_product(ring(200, "40000"), gold_catalog()))
        summary.record(ProductOutcome.unchanged(300))

        data = summary.to_dict()
        assert data["failed"] == 5
        assert len(data["failedProducts"]) == 2
        assert data["pricesChanged"] == 5
        assert len(data["changes"]) == 3
        assert data["processed"] == 6
        assert data["priceIncreases"] == 4
        assert data["priceDecreases"] == 1
        # 4 * 116.05 - 2883.95, summed over every change, not just the displayed ones
        assert data["totalDiff"] == pytest.approx(-2419.75)
        assert "cancelled" not in data

    def test_contract_keys(self):
        data = RecalculationSummary(dry_run=False).to_dict()
        assert list(data) == [
            "dryRun", "processed", "failed", "failedProducts", "pricesChanged",
            "priceIncreases", "priceDecreases", "totalDiff", "changes",
        ]

    def test_change_shape(self):
        outcome = reprice_product(ring(42, "37000"), gold_catalog())
        assert outcome.change.to_dict() == {
            "productId": "42",
            "name": "Ring 42",
            "oldPrice": 37000,
            "newPrice": 37116.05,
            "diff": 116.05,
        }


# =============================================================================
# BATCH ORCHESTRATION
# =============================================================================

class TestRecalculateAll:
    def test_dry_run_writes_nothing_and_is_repeatable(self):
        store = FakeStore(gold_catalog(), [ring(i, "30000") for i in range(1, 6)])
        recalculator = PriceRecalculator(store)

        first = recalculator.recalculate_all(dry_run=True).to_dict()
        second = recalculator.recalculate_all(dry_run=True).to_dict()

        assert store.write_calls == []
        assert first == second
        assert first["dryRun"] is True
        assert first["pricesChanged"] == 5

    def test_apply_converges(self):
        store = FakeStore(gold_catalog(), [ring(i, "30000") for i in range(1, 6)])
        recalculator = PriceRecalculator(store)

        applied = recalculator.recalculate_all(dry_run=False)
        assert applied.prices_changed == 5
        assert all(p.final_price == RING_PRICE for p in store.products.values())

        follow_up = recalculator.recalculate_all(dry_run=True)
        assert follow_up.prices_changed == 0
        assert follow_up.processed == 5

    def test_one_dangling_reference_in_ten(self):
        products = [ring(i, "30000") for i in range(1, 10)] + [ring(10, "30000", variant_index=7)]
        store = FakeStore(gold_catalog(), products)

        summary = PriceRecalculator(store).recalculate_all(dry_run=False)

        assert summary.processed == 9
        assert summary.failed == 1
        assert summary.failures[0].id == 10
        assert store.products[10].final_price == Decimal("30000")
        assert all(store.products[i].final_price == RING_PRICE for i in range(1, 10))

    def test_non_finite_price_is_never_written(self, nan_pricing):
        store = FakeStore(gold_catalog(), [ring(1, "30000"), ring(2, "37116.05")])

        summary = PriceRecalculator(store).recalculate_all(dry_run=False)

        assert summary.failed == 2
        assert summary.prices_changed == 0
        assert store.write_calls == []
        assert store.products[1].final_price == Decimal("30000")

    def test_writes_once_per_batch_with_changes(self):
        products = [ring(i, "30000") for i in range(1, 8)] + [ring(8, "37116.05")]
        store = FakeStore(gold_catalog(), products)

        PriceRecalculator(store, batch_size=3).recalculate_all(dry_run=False)

        # batches: [1,2,3] [4,5,6] [7,8]; product 8 is already correct
        assert [sorted(call) for call in store.write_calls] == [[1, 2, 3], [4, 5, 6], [7]]

    def test_unchanged_batch_issues_no_write(self):
        store = FakeStore(gold_catalog(), [ring(i, "37116.05") for i in range(1, 4)])
        PriceRecalculator(store, batch_size=2).recalculate_all(dry_run=False)
        assert store.write_calls == []

    def test_rate_change_is_picked_up(self):
        store = FakeStore(gold_catalog("7000"), [ring(1, "37116.05")])
        summary = PriceRecalculator(store).recalculate_all(dry_run=True)
        # 7000*5 = 35000, +1050 wastage, +500 making = 36550, +1096.50 GST
        assert summary.changes[0].new_price == Decimal("37646.50")
        assert summary.price_increases == 1

    def test_cancel_between_batches(self):
        store = FakeStore(gold_catalog(), [ring(i, "30000") for i in range(1, 7)])
        cancel = threading.Event()

        class CancelAfterFirstWrite:
            def __getattr__(self, name):
                return getattr(store, name)

            def bulk_update_prices(self, prices):
                cancel.set()
                return store.bulk_update_prices(prices)

        summary = PriceRecalculator(CancelAfterFirstWrite(), batch_size=2).recalculate_all(
            dry_run=False, cancel_event=cancel
        )

        assert summary.cancelled is True
        assert summary.to_dict()["cancelled"] is True
        assert summary.processed == 2
        assert len(store.write_calls) == 1

    def test_catalog_outage_propagates(self):
        store = FailingCatalogStore(gold_catalog(), [ring(1)])
        with pytest.raises(ConnectionError):
            PriceRecalculator(store).recalculate_all(dry_run=True)

    def test_from_config(self):
        store = FakeStore(gold_catalog(), [])
        recalculator = PriceRecalculator.from_config(
            {"PRICE_RECALC_BATCH_SIZE": 25, "DEFAULT_GST_PERCENTAGE": "5",
             "PRICE_RECALC_MAX_FAILURES": 20, "PRICE_RECALC_MAX_CHANGES": 50},
            store,
        )
        assert recalculator.batch_size == 25
        assert recalculator.default_gst == "5"
        summary = recalculator.recalculate_all(dry_run=False)
        assert summary.processed == 0
