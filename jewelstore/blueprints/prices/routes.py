"""
Price Routes

Provides:
- POST /api/prices/preview      (full breakdown for a proposed composition, nothing saved)
- GET  /api/prices/history      (latest material rate changes)
- POST /api/prices/recalculate  (bulk re-price, dry run or apply)

All routes are admin-only.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from ...calculator import price_composition
from ...catalog import SqlCatalogStore
from ...models import PriceHistory
from ...recalculation import PriceRecalculator
from ...security import admin_required
from ...validators import parse_int, parse_pricing_payload

logger = logging.getLogger(__name__)

prices_bp = Blueprint("prices", __name__, url_prefix="/api/prices")


@prices_bp.route("/preview", methods=["POST"])
@admin_required
def preview():
    """Live form preview. Reference errors answer 422 like a real save would."""
    data = request.get_json(silent=True) or {}
    fields = parse_pricing_payload(data, current_app.config["DEFAULT_GST_PERCENTAGE"])

    metals = fields["metal_composition"]
    gemstones = fields["gemstone_composition"]
    catalog = SqlCatalogStore().load_catalog(
        metal_ids={e.metal_id for e in metals},
        gemstone_ids={e.gemstone_id for e in gemstones},
    )
    breakdown, _, _ = price_composition(
        catalog,
        metals,
        gemstones,
        fields["additional_charges"],
        fields["gst_percentage"],
        fields["discount"],
    )
    return jsonify(breakdown.to_dict())


@prices_bp.route("/history", methods=["GET"])
@admin_required
def history():
    limit = min(parse_int(request.args.get("limit"), "limit", default=50, minimum=1), 200)

    q = PriceHistory.query
    entity_type = request.args.get("entityType")
    if entity_type in ("metal", "gemstone"):
        q = q.filter(PriceHistory.entity_type == entity_type)
    entity_id = parse_int(request.args.get("entityId"), "entityId")
    if entity_id is not None:
        q = q.filter(PriceHistory.entity_id == entity_id)

    rows = q.order_by(PriceHistory.changed_at.desc(), PriceHistory.id.desc()).limit(limit).all()
    return jsonify([r.to_dict() for r in rows])


@prices_bp.route("/recalculate", methods=["POST"])
@admin_required
def recalculate():
    """
    Re-price every product against current rates.

    Body {"dryRun": true} previews; anything else (including no body) applies.
    """
    data = request.get_json(silent=True)
    dry_run = isinstance(data, dict) and data.get("dryRun") is True

    recalculator = PriceRecalculator.from_config(current_app.config, SqlCatalogStore())
    summary = recalculator.recalculate_all(dry_run=dry_run)
    return jsonify(summary.to_dict())
