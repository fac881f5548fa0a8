"""
Jewelstore – Catalog Domain Models

Catalog store for the storefront and admin back-office:
- Admin accounts (Flask-Login)
- Categories
- Metals / Gemstones with positional, append-only variants (current market rates)
- Products composed of metal and gemstone lines plus additional charges
- PriceHistory for material rate changes
- AuditLog for admin mutations

IMPORTANT:
- Products store only the two derived prices (calculated_price, final_price),
  never the full breakdown. See calculator.py.
- Variant positions are never renumbered or reused: composition lines refer to
  them by variant_index. Retire a variant with is_active=False.
- Materials are soft-deleted (is_deleted) once they exist.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .composition import DISCOUNT_TYPES, MAKING_FLAT, Discount
from .extensions import db
from .numeric import as_number


# ---------------------------------------------------------------------
# Admin accounts
# ---------------------------------------------------------------------
class Admin(UserMixin, db.Model):
    """Back-office login account."""

    __tablename__ = "admins"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default="admin")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def is_admin(self) -> bool:
        return self.role in ("admin", "superadmin")

    def to_dict(self) -> dict:
        # Never expose password_hash
        return {"id": self.id, "email": self.email, "name": self.name, "role": self.role}

    def __repr__(self):
        return f"<Admin {self.email}>"


# ---------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------
class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(50), nullable=False, unique=True)
    slug = db.Column(db.String(60), nullable=False, unique=True, index=True)
    display_order = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "displayOrder": self.display_order,
            "isActive": self.is_active,
        }


# ---------------------------------------------------------------------
# Materials (metals, gemstones)
# ---------------------------------------------------------------------
class _VariantOwnerMixin:
    """Append-only variant list shared by Metal and Gemstone."""

    variant_class: type

    def next_variant_position(self) -> int:
        positions = [v.position for v in self.variants]
        return max(positions) + 1 if positions else 0

    def append_variant(self, **fields):
        """Add a variant at the next free position (never inserts in the middle)."""
        variant = self.variant_class(position=self.next_variant_position(), **fields)
        self.variants.append(variant)
        return variant

    def variant_at(self, position: int):
        for variant in self.variants:
            if variant.position == position:
                return variant
        return None


class Metal(_VariantOwnerMixin, db.Model):
    """Metal with its purity variants and default line charges."""

    __tablename__ = "metals"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(50), nullable=False, index=True)
    code = db.Column(db.String(20), nullable=False, unique=True, index=True)
    color = db.Column(db.String(20), nullable=False, default="Other")

    # Defaults applied when a product first adds a line of this metal
    default_wastage_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("3.00"))
    default_making_charge_type = db.Column(db.String(20), nullable=False, default=MAKING_FLAT)
    default_making_charges = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    is_deleted = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variants = db.relationship(
        "MetalVariant",
        back_populates="metal",
        order_by="MetalVariant.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "color": self.color,
            "variants": [v.to_dict() for v in self.variants],
            "defaultWastagePercentage": as_number(self.default_wastage_percentage),
            "defaultMakingChargeType": self.default_making_charge_type,
            "defaultMakingCharges": as_number(self.default_making_charges),
            "isDeleted": self.is_deleted,
        }

    def __repr__(self):
        return f"<Metal {self.code}>"


class MetalVariant(db.Model):
    __tablename__ = "metal_variants"

    id = db.Column(db.Integer, primary_key=True)

    metal_id = db.Column(
        db.Integer,
        db.ForeignKey("metals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False)

    name = db.Column(db.String(100), nullable=False)
    purity = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("0.00"))
    price_per_gram = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    metal = db.relationship("Metal", back_populates="variants")

    __table_args__ = (db.UniqueConstraint("metal_id", "position", name="uq_metal_variant_position"),)

    def to_dict(self) -> dict:
        return {
            "index": self.position,
            "name": self.name,
            "purity": as_number(self.purity),
            "pricePerGram": as_number(self.price_per_gram),
            "unit": "gram",
            "isActive": self.is_active,
        }


Metal.variant_class = MetalVariant


class Gemstone(_VariantOwnerMixin, db.Model):
    __tablename__ = "gemstones"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(50), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False, default="precious")
    hardness = db.Column(db.Numeric(3, 1), nullable=True)

    is_deleted = db.Column(db.Boolean, default=False, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    variants = db.relationship(
        "GemstoneVariant",
        back_populates="gemstone",
        order_by="GemstoneVariant.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "hardness": as_number(self.hardness),
            "variants": [v.to_dict() for v in self.variants],
            "isDeleted": self.is_deleted,
        }

    def __repr__(self):
        return f"<Gemstone {self.name}>"


class GemstoneVariant(db.Model):
    __tablename__ = "gemstone_variants"

    id = db.Column(db.Integer, primary_key=True)

    gemstone_id = db.Column(
        db.Integer,
        db.ForeignKey("gemstones.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False)

    name = db.Column(db.String(100), nullable=False)
    cut = db.Column(db.String(50), nullable=False, default="")
    clarity = db.Column(db.String(20), nullable=False, default="")
    color = db.Column(db.String(20), nullable=False, default="")
    shape = db.Column(db.String(50), nullable=False, default="")
    origin = db.Column(db.String(20), nullable=False, default="Natural")
    price_per_carat = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    certification = db.Column(db.String(100), nullable=False, default="")
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    gemstone = db.relationship("Gemstone", back_populates="variants")

    __table_args__ = (db.UniqueConstraint("gemstone_id", "position", name="uq_gemstone_variant_position"),)

    def to_dict(self) -> dict:
        return {
            "index": self.position,
            "name": self.name,
            "cut": self.cut,
            "clarity": self.clarity,
            "color": self.color,
            "shape": self.shape,
            "origin": self.origin,
            "pricePerCarat": as_number(self.price_per_carat),
            "certification": self.certification,
            "isActive": self.is_active,
        }


Gemstone.variant_class = GemstoneVariant


# ---------------------------------------------------------------------
# Products
# ---------------------------------------------------------------------
class Product(db.Model):
    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(220), nullable=False, unique=True, index=True)
    sku = db.Column(db.String(50), nullable=False, unique=True, index=True)
    description = db.Column(db.Text, nullable=False, default="")
    short_description = db.Column(db.String(300), nullable=False, default="")

    category_id = db.Column(
        db.Integer,
        db.ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Pricing inputs
    gst_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("3.00"))
    discount_type = db.Column(db.String(20), nullable=True)
    discount_value = db.Column(db.Numeric(12, 2), nullable=True)

    # Derived prices (the only persisted outputs of the pricing engine)
    calculated_price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    final_price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"), index=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    is_featured = db.Column(db.Boolean, default=False, nullable=False, index=True)
    in_stock = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    metal_composition = db.relationship(
        "ProductMetal",
        back_populates="product",
        order_by="ProductMetal.line_no",
        cascade="all, delete-orphan",
    )
    gemstone_composition = db.relationship(
        "ProductGemstone",
        back_populates="product",
        order_by="ProductGemstone.line_no",
        cascade="all, delete-orphan",
    )
    additional_charges = db.relationship(
        "ProductCharge",
        back_populates="product",
        order_by="ProductCharge.line_no",
        cascade="all, delete-orphan",
    )

    @property
    def discount(self) -> Discount | None:
        if self.discount_type not in DISCOUNT_TYPES or self.discount_value is None:
            return None
        return Discount(type=self.discount_type, value=Decimal(str(self.discount_value)))

    @discount.setter
    def discount(self, value: Discount | None):
        self.discount_type = value.type if value else None
        self.discount_value = value.value if value else None

    @property
    def total_weight_grams(self) -> Decimal:
        return sum((Decimal(str(m.weight_in_grams)) for m in self.metal_composition), Decimal("0"))

    @property
    def total_carat_weight(self) -> Decimal:
        return sum((Decimal(str(g.total_carat_weight)) for g in self.gemstone_composition), Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "sku": self.sku,
            "description": self.description,
            "shortDescription": self.short_description,
            "category": self.category.to_dict() if self.category else None,
            "metalComposition": [m.to_dict() for m in self.metal_composition],
            "gemstoneComposition": [g.to_dict() for g in self.gemstone_composition],
            "additionalCharges": [c.to_dict() for c in self.additional_charges],
            "gstPercentage": as_number(self.gst_percentage),
            "discount": self.discount.to_dict() if self.discount else None,
            "calculatedPrice": as_number(self.calculated_price),
            "finalPrice": as_number(self.final_price),
            "totalWeightGrams": as_number(self.total_weight_grams),
            "totalCaratWeight": as_number(self.total_carat_weight),
            "isActive": self.is_active,
            "isFeatured": self.is_featured,
            "inStock": self.in_stock,
        }

    def __repr__(self):
        return f"<Product {self.sku}>"


class ProductMetal(db.Model):
    """Metal composition line: one metal variant + weight + line charges."""

    __tablename__ = "product_metals"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no = db.Column(db.Integer, nullable=False, default=0)

    metal_id = db.Column(db.Integer, db.ForeignKey("metals.id"), nullable=False, index=True)
    variant_index = db.Column(db.Integer, nullable=False, default=0)
    # Label frozen at composition time, never re-resolved
    variant_name = db.Column(db.String(100), nullable=False)

    weight_in_grams = db.Column(db.Numeric(10, 3), nullable=False, default=Decimal("0"))
    part = db.Column(db.String(100), nullable=False, default="")
    wastage_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("3.00"))
    making_charges = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    making_charge_type = db.Column(db.String(20), nullable=False, default=MAKING_FLAT)

    product = db.relationship("Product", back_populates="metal_composition")
    metal = db.relationship("Metal")

    def to_dict(self) -> dict:
        return {
            "metal": self.metal_id,
            "variantIndex": self.variant_index,
            "variantName": self.variant_name,
            "weightInGrams": as_number(self.weight_in_grams),
            "part": self.part,
            "wastagePercentage": as_number(self.wastage_percentage),
            "makingCharges": as_number(self.making_charges),
            "makingChargeType": self.making_charge_type,
        }


class ProductGemstone(db.Model):
    """Gemstone composition line: one gemstone variant + quantity/carats + setting charge."""

    __tablename__ = "product_gemstones"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no = db.Column(db.Integer, nullable=False, default=0)

    gemstone_id = db.Column(db.Integer, db.ForeignKey("gemstones.id"), nullable=False, index=True)
    variant_index = db.Column(db.Integer, nullable=False, default=0)
    variant_name = db.Column(db.String(100), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    total_carat_weight = db.Column(db.Numeric(10, 3), nullable=False, default=Decimal("0"))
    stone_charges = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    setting = db.Column(db.String(50), nullable=False, default="")
    position = db.Column(db.String(100), nullable=False, default="")
    certification = db.Column(db.String(100), nullable=True)

    product = db.relationship("Product", back_populates="gemstone_composition")
    gemstone = db.relationship("Gemstone")

    def to_dict(self) -> dict:
        return {
            "gemstone": self.gemstone_id,
            "variantIndex": self.variant_index,
            "variantName": self.variant_name,
            "quantity": self.quantity,
            "totalCaratWeight": as_number(self.total_carat_weight),
            "stoneCharges": as_number(self.stone_charges),
            "setting": self.setting,
            "position": self.position,
            "certification": self.certification,
        }


class ProductCharge(db.Model):
    __tablename__ = "product_charges"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    line_no = db.Column(db.Integer, nullable=False, default=0)

    label = db.Column(db.String(100), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    product = db.relationship("Product", back_populates="additional_charges")

    def to_dict(self) -> dict:
        return {"label": self.label, "amount": as_number(self.amount)}


# ---------------------------------------------------------------------
# History & audit
# ---------------------------------------------------------------------
class PriceHistory(db.Model):
    """Material rate change (one variant, old -> new)."""

    __tablename__ = "price_history"

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(20), nullable=False, index=True)  # metal | gemstone
    entity_id = db.Column(db.Integer, nullable=False, index=True)
    variant_index = db.Column(db.Integer, nullable=False)
    variant_name = db.Column(db.String(100), nullable=False)

    old_price = db.Column(db.Numeric(12, 2), nullable=False)
    new_price = db.Column(db.Numeric(12, 2), nullable=False)

    changed_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
    changed_by_id = db.Column(db.Integer, db.ForeignKey("admins.id", ondelete="SET NULL"), nullable=True)

    changed_by = db.relationship("Admin")

    __table_args__ = (db.Index("ix_price_history_entity_changed", "entity_id", "changed_at"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "variantIndex": self.variant_index,
            "variantName": self.variant_name,
            "oldPrice": as_number(self.old_price),
            "newPrice": as_number(self.new_price),
            "changedAt": self.changed_at.isoformat() if self.changed_at else None,
            "changedBy": self.changed_by.email if self.changed_by else None,
        }


class AuditLog(db.Model):
    """Audit trail for admin mutations."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id", ondelete="SET NULL"), nullable=True, index=True)
    email_snapshot = db.Column(db.String(255), nullable=True)

    entity_type = db.Column(db.String(50), nullable=False, index=True)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    action = db.Column(db.String(20), nullable=False, index=True)

    before_data = db.Column(db.Text, nullable=True)
    after_data = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
