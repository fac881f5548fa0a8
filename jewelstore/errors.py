"""
jewelstore/errors.py

Error taxonomy for the pricing engine and request parsing.

- Reference errors (missing material / variant) are raised by the resolver only.
  In batch recalculation they become per-product failures; in single-product
  create/update they fail the request.
- The calculator never raises.
"""

from __future__ import annotations


class PricingError(Exception):
    """Base class for pricing engine errors."""


class PricingReferenceError(PricingError):
    """A composition line points at a material or variant that cannot be resolved."""

    def __init__(self, message: str, *, material_kind: str, material_id: str | None,
                 variant_index: int | None = None):
        super().__init__(message)
        self.material_kind = material_kind
        self.material_id = material_id
        self.variant_index = variant_index


class MaterialNotFoundError(PricingReferenceError):
    """Material id absent from the catalog snapshot (or entry has no reference)."""


class VariantNotFoundError(PricingReferenceError):
    """Variant index does not exist on the referenced material."""


class ValidationError(ValueError):
    """Invalid request payload."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field
