"""
Shared pytest fixtures.

- app:          application on TestConfig with a fresh in-memory database
- client:       anonymous test client
- admin_client: test client logged in as an admin
- seeded:       default metals, gemstones and categories
- make_product: insert a product row directly (bypassing the API)
"""

from decimal import Decimal

import pytest

from config import TestConfig
from jewelstore import create_app
from jewelstore.extensions import db as _db
from jewelstore.models import Admin, Gemstone, Metal, Product, ProductCharge, ProductGemstone, ProductMetal
from jewelstore.seed import seed_catalog

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "s3cret-pass"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin(db):
    admin = Admin(email=ADMIN_EMAIL, name="Store Admin")
    admin.set_password(ADMIN_PASSWORD)
    db.session.add(admin)
    db.session.commit()
    return admin


@pytest.fixture
def admin_client(client, admin):
    resp = client.post("/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return client


@pytest.fixture
def seeded(db):
    seed_catalog()
    return db


@pytest.fixture
def gold(seeded):
    """Gold: 24K@0=7500, 22K@1=6900, 18K@2=5625, 14K@3=4400 per gram."""
    return Metal.query.filter_by(code="GOLD").one()


@pytest.fixture
def diamond(seeded):
    """Diamond: position 0 = 50000 per carat."""
    return Gemstone.query.filter_by(name="Diamond").one()


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(name=None, metals=(), gemstones=(), charges=(), gst="3", discount=None,
              final_price="0", calculated_price="0", **extra):
        """
        metals:    (metal_id, variant_index, weight[, making_charges])
        gemstones: (gemstone_id, variant_index, carats[, stone_charges])
        charges:   (label, amount)
        """
        counter["n"] += 1
        n = counter["n"]
        product = Product(
            name=name or f"Product {n}",
            slug=f"product-{n}",
            sku=f"SKU-{n:04d}",
            gst_percentage=Decimal(gst),
            calculated_price=Decimal(calculated_price),
            final_price=Decimal(final_price),
            **extra,
        )
        product.discount = discount
        for i, line in enumerate(metals):
            metal_id, index, weight = line[:3]
            product.metal_composition.append(
                ProductMetal(
                    line_no=i,
                    metal_id=metal_id,
                    variant_index=index,
                    variant_name=f"variant {index}",
                    weight_in_grams=Decimal(str(weight)),
                    wastage_percentage=Decimal("3"),
                    making_charges=Decimal(str(line[3])) if len(line) > 3 else Decimal("500"),
                    making_charge_type="flat",
                )
            )
        for i, line in enumerate(gemstones):
            gemstone_id, index, carats = line[:3]
            product.gemstone_composition.append(
                ProductGemstone(
                    line_no=i,
                    gemstone_id=gemstone_id,
                    variant_index=index,
                    variant_name=f"stone {index}",
                    quantity=1,
                    total_carat_weight=Decimal(str(carats)),
                    stone_charges=Decimal(str(line[3])) if len(line) > 3 else Decimal("0"),
                )
            )
        for i, (label, amount) in enumerate(charges):
            product.additional_charges.append(ProductCharge(line_no=i, label=label, amount=Decimal(str(amount))))
        db.session.add(product)
        db.session.commit()
        return product

    return _make
