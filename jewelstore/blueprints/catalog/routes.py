"""
Catalog Routes (categories, metals, gemstones)

Provides:
- /api/categories, /api/categories/<id>
- /api/metals, /api/metals/<id> (GET, PUT, DELETE), /api/metals/<id>/price, /api/metals/<id>/variants[...]
- /api/gemstones (same shape as metals)

Rules:
- Reads are public; every mutation is admin-only and audited.
- Variants are append-only: new ones get the next position, old ones are
  deactivated, never removed or reordered (products reference positions).
- A rate change writes a PriceHistory row. Product prices are NOT touched
  here; run /api/prices/recalculate afterwards.
- Materials are soft-deleted, and only when no product references them.
- Categories are hard-deleted, and only when no product is in them.
"""

import logging

from flask import Blueprint, abort, jsonify, request
from flask_login import current_user
from sqlalchemy import func, select

from ...audit import log_action, serialize_model
from ...extensions import db
from ...models import (
    Category,
    Gemstone,
    Metal,
    PriceHistory,
    Product,
    ProductGemstone,
    ProductMetal,
)
from ...security import admin_required
from ...validators import (
    parse_category_payload,
    parse_gemstone_payload,
    parse_gemstone_variant,
    parse_metal_payload,
    parse_metal_variant,
    parse_price_update,
)

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# Per-kind wiring shared by the metal and gemstone routes
MATERIALS = {
    "metals": {
        "kind": "metal",
        "model": Metal,
        "line_model": ProductMetal,
        "line_fk": ProductMetal.metal_id,
        "price_attr": "price_per_gram",
        "parse": parse_metal_payload,
        "parse_variant": parse_metal_variant,
    },
    "gemstones": {
        "kind": "gemstone",
        "model": Gemstone,
        "line_model": ProductGemstone,
        "line_fk": ProductGemstone.gemstone_id,
        "price_attr": "price_per_carat",
        "parse": parse_gemstone_payload,
        "parse_variant": parse_gemstone_variant,
    },
}


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _wiring(collection: str) -> dict:
    wiring = MATERIALS.get(collection)
    if wiring is None:
        abort(404)
    return wiring


def _load_material(collection: str, material_id: int):
    wiring = _wiring(collection)
    material = db.session.get(wiring["model"], material_id)
    if material is None:
        abort(404, description=f"{wiring['kind'].capitalize()} not found")
    return wiring, material


def _products_referencing(wiring: dict, material_id: int) -> int:
    line = wiring["line_model"]
    return db.session.scalar(
        select(func.count(func.distinct(line.product_id))).where(wiring["line_fk"] == material_id)
    ) or 0


# ============================================================
# CATEGORIES
# ============================================================

@catalog_bp.route("/categories", methods=["GET"])
def list_categories():
    categories = (
        Category.query
        .filter_by(is_active=True)
        .order_by(Category.display_order.asc(), Category.name.asc())
        .all()
    )
    return jsonify([c.to_dict() for c in categories])


@catalog_bp.route("/categories", methods=["POST"])
@admin_required
def create_category():
    fields = parse_category_payload(_json_body())

    if Category.query.filter_by(slug=fields["slug"]).first():
        return jsonify({"error": f'Category with slug "{fields["slug"]}" already exists'}), 409
    if Category.query.filter_by(name=fields["name"]).first():
        return jsonify({"error": f'Category "{fields["name"]}" already exists'}), 409

    category = Category(**fields)
    db.session.add(category)
    db.session.flush()
    log_action(category, "CREATE", after=serialize_model(category))
    db.session.commit()
    return jsonify(category.to_dict()), 201


def _load_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        abort(404, description="Category not found")
    return category


@catalog_bp.route("/categories/<int:category_id>", methods=["GET"])
def get_category(category_id: int):
    return jsonify(_load_category(category_id).to_dict())


@catalog_bp.route("/categories/<int:category_id>", methods=["PUT"])
@admin_required
def update_category(category_id: int):
    category = _load_category(category_id)
    fields = parse_category_payload(_json_body(), partial=True)

    if "slug" in fields and fields["slug"] != category.slug:
        if Category.query.filter(Category.slug == fields["slug"], Category.id != category.id).first():
            return jsonify({"error": f'Category with slug "{fields["slug"]}" already exists'}), 409
    if "name" in fields and fields["name"] != category.name:
        if Category.query.filter(Category.name == fields["name"], Category.id != category.id).first():
            return jsonify({"error": f'Category "{fields["name"]}" already exists'}), 409

    before = serialize_model(category)
    for key, value in fields.items():
        setattr(category, key, value)
    log_action(category, "UPDATE", before=before, after=serialize_model(category))
    db.session.commit()
    return jsonify(category.to_dict())


@catalog_bp.route("/categories/<int:category_id>", methods=["DELETE"])
@admin_required
def delete_category(category_id: int):
    category = _load_category(category_id)

    count = Product.query.filter_by(category_id=category.id).count()
    if count > 0:
        return jsonify(
            {"error": f"Cannot delete: {count} product(s) are in this category. Reassign them first."}
        ), 409

    log_action(category, "DELETE", before=serialize_model(category))
    db.session.delete(category)
    db.session.commit()
    return jsonify({"message": "Category deleted"})


# ============================================================
# METALS / GEMSTONES
# ============================================================

@catalog_bp.route("/<any(metals, gemstones):collection>", methods=["GET"])
def list_materials(collection: str):
    wiring = _wiring(collection)
    model = wiring["model"]
    q = model.query
    if request.args.get("includeDeleted") not in ("1", "true"):
        q = q.filter(model.is_deleted.is_(False))
    return jsonify([m.to_dict() for m in q.order_by(model.name.asc()).all()])


@catalog_bp.route("/<any(metals, gemstones):collection>/<int:material_id>", methods=["GET"])
def get_material(collection: str, material_id: int):
    _, material = _load_material(collection, material_id)
    return jsonify(material.to_dict())


@catalog_bp.route("/<any(metals, gemstones):collection>", methods=["POST"])
@admin_required
def create_material(collection: str):
    wiring = _wiring(collection)
    model = wiring["model"]
    fields = wiring["parse"](_json_body())
    variants = fields.pop("variants")

    if model is Metal and Metal.query.filter_by(code=fields["code"]).first():
        return jsonify({"error": f'Metal with code "{fields["code"]}" already exists'}), 409
    if model is Gemstone and Gemstone.query.filter_by(name=fields["name"], is_deleted=False).first():
        return jsonify({"error": f'Gemstone "{fields["name"]}" already exists'}), 409

    material = model(**fields)
    for variant in variants:
        material.append_variant(**variant)
    db.session.add(material)
    db.session.flush()

    log_action(material, "CREATE", after=material.to_dict())
    db.session.commit()
    logger.info("%s %s created with %d variants", wiring["kind"], material.id, len(variants))
    return jsonify(material.to_dict()), 201


@catalog_bp.route("/<any(metals, gemstones):collection>/<int:material_id>", methods=["PUT"])
@admin_required
def update_material(collection: str, material_id: int):
    """
    Edit a material's own fields (name, code, color, default line policy, ...).

    Variants are not touched here; rates go through /price and new variants
    through /variants. Product prices change only on the next recalculation.
    """
    wiring, material = _load_material(collection, material_id)
    fields = wiring["parse"](_json_body(), partial=True)

    if "code" in fields and fields["code"] != material.code:
        if Metal.query.filter(Metal.code == fields["code"], Metal.id != material.id).first():
            return jsonify({"error": f'Metal with code "{fields["code"]}" already exists'}), 409
    if isinstance(material, Gemstone) and "name" in fields and fields["name"] != material.name:
        clash = Gemstone.query.filter(
            Gemstone.name == fields["name"], Gemstone.id != material.id, Gemstone.is_deleted.is_(False)
        ).first()
        if clash:
            return jsonify({"error": f'Gemstone "{fields["name"]}" already exists'}), 409

    before = serialize_model(material)
    for key, value in fields.items():
        setattr(material, key, value)
    log_action(material, "UPDATE", before=before, after=serialize_model(material))
    db.session.commit()

    logger.info("%s %s updated: %s", wiring["kind"], material.id, ", ".join(sorted(fields)))
    return jsonify(material.to_dict())


@catalog_bp.route("/<any(metals, gemstones):collection>/<int:material_id>/price", methods=["PUT"])
@admin_required
def update_variant_price(collection: str, material_id: int):
    """Change one variant's current rate and record it in PriceHistory."""
    wiring, material = _load_material(collection, material_id)
    index, new_price = parse_price_update(_json_body())

    variant = material.variant_at(index)
    if variant is None:
        return jsonify({"error": f"Variant index {index} out of range"}), 400

    old_price = getattr(variant, wiring["price_attr"])
    if old_price == new_price:
        return jsonify(material.to_dict())

    setattr(variant, wiring["price_attr"], new_price)
    db.session.add(
        PriceHistory(
            entity_type=wiring["kind"],
            entity_id=material.id,
            variant_index=variant.position,
            variant_name=variant.name,
            old_price=old_price,
            new_price=new_price,
            changed_by_id=current_user.id,
        )
    )
    log_action(
        material,
        "PRICE_UPDATE",
        before={"variantIndex": index, "price": str(old_price)},
        after={"variantIndex": index, "price": str(new_price)},
    )
    db.session.commit()

    logger.info(
        "%s %s variant %d (%s): %s -> %s",
        wiring["kind"], material.id, index, variant.name, old_price, new_price,
    )
    return jsonify(material.to_dict())


@catalog_bp.route("/<any(metals, gemstones):collection>/<int:material_id>/variants", methods=["POST"])
@admin_required
def add_variant(collection: str, material_id: int):
    wiring, material = _load_material(collection, material_id)
    fields = wiring["parse_variant"](_json_body())

    before = material.to_dict()
    variant = material.append_variant(**fields)
    db.session.flush()
    log_action(material, "UPDATE", before=before, after=material.to_dict())
    db.session.commit()
    return jsonify(variant.to_dict()), 201


@catalog_bp.route(
    "/<any(metals, gemstones):collection>/<int:material_id>/variants/<int:index>/deactivate",
    methods=["POST"],
)
@admin_required
def deactivate_variant(collection: str, material_id: int, index: int):
    _, material = _load_material(collection, material_id)
    variant = material.variant_at(index)
    if variant is None:
        abort(404, description=f"Variant index {index} not found")

    if variant.is_active:
        before = variant.to_dict()
        variant.is_active = False
        log_action(material, "UPDATE", before={"variant": before}, after={"variant": variant.to_dict()})
        db.session.commit()
    return jsonify(variant.to_dict())


@catalog_bp.route("/<any(metals, gemstones):collection>/<int:material_id>", methods=["DELETE"])
@admin_required
def delete_material(collection: str, material_id: int):
    wiring, material = _load_material(collection, material_id)

    count = _products_referencing(wiring, material.id)
    if count > 0:
        return jsonify(
            {"error": f"Cannot delete: {count} product(s) use this {wiring['kind']}. Remove references first."}
        ), 409

    before = serialize_model(material)
    material.is_deleted = True
    log_action(material, "DELETE", before=before, after=serialize_model(material))
    db.session.commit()
    return jsonify({"message": f"{wiring['kind'].capitalize()} deleted"})
