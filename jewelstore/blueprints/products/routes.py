"""
Product Routes

Provides:
- GET    /api/products        (storefront listing: filters, sorting, pagination)
- GET    /api/products/<id>
- POST   /api/products        (admin)
- PUT    /api/products/<id>   (admin, partial update)
- DELETE /api/products/<id>   (admin)

Rules:
- calculated_price / final_price are never accepted from the client. They are
  derived on every create/update from the composition and current material rates.
- A dangling material/variant reference fails the request (422) and nothing is saved.
- SKU is unique (409). Slugs are derived from the name and made unique with a
  numeric suffix.
"""

import logging

from flask import Blueprint, abort, current_app, jsonify, request
from sqlalchemy import exists, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from ...audit import log_action, serialize_model
from ...calculator import price_composition, resolve_gst_percentage
from ...catalog import SqlCatalogStore, product_record
from ...errors import ValidationError
from ...extensions import db
from ...models import Category, Product, ProductCharge, ProductGemstone, ProductMetal
from ...security import admin_required
from ...validators import parse_decimal, parse_int, parse_product_payload, require_composition, slugify

logger = logging.getLogger(__name__)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


SORTS = {
    "newest": (Product.created_at.desc(), Product.id.desc()),
    "oldest": (Product.created_at.asc(), Product.id.asc()),
    "price_asc": (Product.final_price.asc(), Product.id.asc()),
    "price_desc": (Product.final_price.desc(), Product.id.desc()),
    "name_asc": (Product.name.asc(), Product.id.asc()),
    "name_desc": (Product.name.desc(), Product.id.desc()),
}

SCALAR_FIELDS = (
    "name", "sku", "slug", "description", "short_description", "category_id",
    "gst_percentage", "is_active", "is_featured", "in_stock",
)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", "body")
    return data


def _load_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        abort(404, description="Product not found")
    return product


def _unique_slug(base: str, exclude_id: int | None = None) -> str:
    """base, base-1, base-2, ... first one not used by another product."""
    base = base or "product"
    slug, n = base, 0
    while True:
        q = Product.query.filter(Product.slug == slug)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if not q.first():
            return slug
        n += 1
        slug = f"{base}-{n}"


def _check_category(category_id: int | None) -> None:
    if category_id is not None and db.session.get(Category, category_id) is None:
        raise ValidationError(f"Category {category_id} does not exist", "category")


def _price(metal_entries, gemstone_entries, charges, gst, discount):
    """Resolve against current (non-deleted) materials and compute prices. Raises reference errors."""
    catalog = SqlCatalogStore().load_catalog(
        metal_ids={e.metal_id for e in metal_entries},
        gemstone_ids={e.gemstone_id for e in gemstone_entries},
    )
    return price_composition(catalog, metal_entries, gemstone_entries, charges, gst, discount)


def _metal_lines(resolved) -> list[ProductMetal]:
    return [
        ProductMetal(
            line_no=i,
            metal_id=int(e.metal_id),
            variant_index=e.variant_index,
            variant_name=e.variant_name,
            weight_in_grams=e.weight_in_grams,
            part=e.part,
            wastage_percentage=e.wastage_percentage,
            making_charges=e.making_charges,
            making_charge_type=e.making_charge_type,
        )
        for i, e in enumerate(resolved)
    ]


def _gemstone_lines(resolved) -> list[ProductGemstone]:
    return [
        ProductGemstone(
            line_no=i,
            gemstone_id=int(e.gemstone_id),
            variant_index=e.variant_index,
            variant_name=e.variant_name,
            quantity=int(e.quantity),
            total_carat_weight=e.total_carat_weight,
            stone_charges=e.stone_charges,
            setting=e.setting,
            position=e.position,
            certification=e.certification,
        )
        for i, e in enumerate(resolved)
    ]


def _charge_lines(charges) -> list[ProductCharge]:
    return [ProductCharge(line_no=i, label=c.label, amount=c.amount) for i, c in enumerate(charges)]


def _flush_or_conflict():
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        abort(409, description="Product with this SKU or slug already exists")


# ============================================================
# LIST / DETAIL
# ============================================================

@products_bp.route("", methods=["GET"])
def list_products():
    args = request.args
    cfg = current_app.config

    page = parse_int(args.get("page"), "page", default=1, minimum=1)
    limit = parse_int(args.get("limit"), "limit", default=cfg.get("PRODUCTS_PER_PAGE", 20), minimum=1)
    if limit > cfg.get("PRODUCTS_MAX_PER_PAGE", 100):
        raise ValidationError(f"limit cannot exceed {cfg.get('PRODUCTS_MAX_PER_PAGE', 100)}", "limit")

    sort = args.get("sort") or "newest"
    if sort not in SORTS:
        raise ValidationError(f"sort must be one of: {', '.join(SORTS)}", "sort")

    q = Product.query.filter(Product.is_active.is_(True))

    category = (args.get("category") or "").strip()
    if category:
        if category.isdigit():
            q = q.filter(Product.category_id == int(category))
        else:
            q = q.join(Category).filter(Category.slug == category)

    metal_id = parse_int(args.get("metal"), "metal")
    if metal_id is not None:
        q = q.filter(exists().where(ProductMetal.product_id == Product.id, ProductMetal.metal_id == metal_id))

    gemstone_id = parse_int(args.get("gemstone"), "gemstone")
    if gemstone_id is not None:
        q = q.filter(
            exists().where(ProductGemstone.product_id == Product.id, ProductGemstone.gemstone_id == gemstone_id)
        )

    min_price = parse_decimal(args.get("minPrice"), "minPrice")
    if min_price is not None:
        q = q.filter(Product.final_price >= min_price)
    max_price = parse_decimal(args.get("maxPrice"), "maxPrice")
    if max_price is not None:
        q = q.filter(Product.final_price <= max_price)

    featured = args.get("featured")
    if featured in ("true", "1"):
        q = q.filter(Product.is_featured.is_(True))
    elif featured in ("false", "0"):
        q = q.filter(Product.is_featured.is_(False))

    search = (args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Product.name.ilike(like), Product.sku.ilike(like)))

    total = q.count()
    products = (
        q.options(
            selectinload(Product.metal_composition),
            selectinload(Product.gemstone_composition),
            selectinload(Product.additional_charges),
        )
        .order_by(*SORTS[sort])
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    total_pages = (total + limit - 1) // limit
    return jsonify({
        "data": [p.to_dict() for p in products],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page * limit < total,
            "hasPrev": page > 1,
        },
    })


@products_bp.route("/<int:product_id>", methods=["GET"])
def get_product(product_id: int):
    return jsonify(_load_product(product_id).to_dict())


# ============================================================
# CREATE / UPDATE / DELETE
# ============================================================

@products_bp.route("", methods=["POST"])
@admin_required
def create_product():
    default_gst = current_app.config["DEFAULT_GST_PERCENTAGE"]
    fields = parse_product_payload(_json_body(), default_gst)

    if Product.query.filter_by(sku=fields["sku"]).first():
        return jsonify({"error": f'Product with SKU "{fields["sku"]}" already exists'}), 409
    _check_category(fields.get("category_id"))

    breakdown, metals, gemstones = _price(
        fields["metal_composition"],
        fields["gemstone_composition"],
        fields["additional_charges"],
        fields["gst_percentage"],
        fields["discount"],
    )

    product = Product(**{k: fields[k] for k in SCALAR_FIELDS if k in fields})
    product.slug = _unique_slug(fields["slug"])
    product.discount = fields["discount"]
    product.metal_composition = _metal_lines(metals)
    product.gemstone_composition = _gemstone_lines(gemstones)
    product.additional_charges = _charge_lines(fields["additional_charges"])
    product.calculated_price = breakdown.calculated_price
    product.final_price = breakdown.final_price

    db.session.add(product)
    _flush_or_conflict()
    log_action(product, "CREATE", after=serialize_model(product))
    db.session.commit()

    logger.info("Product %s (%s) created at %s", product.id, product.sku, product.final_price)
    return jsonify(product.to_dict()), 201


@products_bp.route("/<int:product_id>", methods=["PUT"])
@admin_required
def update_product(product_id: int):
    product = _load_product(product_id)
    default_gst = current_app.config["DEFAULT_GST_PERCENTAGE"]
    fields = parse_product_payload(_json_body(), default_gst, partial=True)

    if "sku" in fields and fields["sku"] != product.sku:
        if Product.query.filter(Product.sku == fields["sku"], Product.id != product.id).first():
            return jsonify({"error": f'SKU "{fields["sku"]}" already in use'}), 409
    if "category_id" in fields:
        _check_category(fields["category_id"])

    if "slug" in fields:
        fields["slug"] = _unique_slug(fields["slug"], exclude_id=product.id)
    elif "name" in fields and fields["name"] != product.name:
        fields["slug"] = _unique_slug(slugify(fields["name"]), exclude_id=product.id)

    # Merge provided fields over the stored product, then re-price
    stored = product_record(product)
    metal_entries = fields.get("metal_composition", list(stored.metal_composition))
    gemstone_entries = fields.get("gemstone_composition", list(stored.gemstone_composition))
    charges = fields.get("additional_charges", list(stored.additional_charges))
    gst = fields.get("gst_percentage", resolve_gst_percentage(stored.gst_percentage, default_gst))
    discount = fields["discount"] if "discount" in fields else stored.discount

    require_composition(metal_entries, gemstone_entries)
    breakdown, metals, gemstones = _price(metal_entries, gemstone_entries, charges, gst, discount)

    before = serialize_model(product)

    for key in SCALAR_FIELDS:
        if key in fields:
            setattr(product, key, fields[key])
    if "discount" in fields:
        product.discount = discount
    if "metal_composition" in fields:
        product.metal_composition = _metal_lines(metals)
    if "gemstone_composition" in fields:
        product.gemstone_composition = _gemstone_lines(gemstones)
    if "additional_charges" in fields:
        product.additional_charges = _charge_lines(charges)
    product.calculated_price = breakdown.calculated_price
    product.final_price = breakdown.final_price

    _flush_or_conflict()
    log_action(product, "UPDATE", before=before, after=serialize_model(product))
    db.session.commit()
    return jsonify(product.to_dict())


@products_bp.route("/<int:product_id>", methods=["DELETE"])
@admin_required
def delete_product(product_id: int):
    product = _load_product(product_id)
    log_action(product, "DELETE", before=serialize_model(product))
    db.session.delete(product)
    db.session.commit()
    return jsonify({"message": "Product deleted"})
