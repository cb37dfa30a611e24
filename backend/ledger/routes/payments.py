# Overview: Flask API routes for payment allocation and payment-method mappings.

# backend/ledger/routes/payments.py
"""
Payment Allocation API Routes

WHY: Checkout settles a total due with one or more payment legs. This is
the join point between the sale flow and the ledger.

DESIGN:
- POST /allocate posts every ledger-affecting leg in one transaction
- Unmapped methods are accepted and listed in "unmapped_legs"
- Mapping management (which envelope receives each method) is admin-only
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_context
from ..errors import LedgerError, ValidationError
from ..services import allocation_service, payment_method_service
from ..services.allocation_service import AllocationContext, PaymentLeg
from ..validation import parse_int, parse_optional_int, require_fields, require_json

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("/allocate")
@require_context
def allocate_route():
    """
    Settle a total due across payment legs.

    Request body:
    {
        "total_due": "1500.00",
        "legs": [
            {"method": "CASH", "amount": "500.00"},
            {"method": "DEBIT_CARD", "amount": "700.00", "reference": "AUTH-123"},
            {"method": "ACCOUNT", "amount": "300.00"}
        ],
        "customer_id": 7,  (required for ACCOUNT legs)
        "register_session_id": 12,  (optional; CASH goes to the drawer)
        "document_type": "SALE",  (optional)
        "document_id": "S-000123",  (optional)
        "concept": "Sale S-000123"  (optional)
    }

    Returns:
        201: {"total_due", "total_paid", "movements", "unmapped_legs"}
        400: Unbalanced or invalid legs
        409: Credit denied, insufficient funds, closed session
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "total_due", "legs")
        raw_legs = data["legs"]
        if not isinstance(raw_legs, list):
            raise ValidationError("legs must be a list")

        context = AllocationContext(
            tenant_id=g.tenant_id,
            actor_id=g.actor_id,
            customer_id=parse_optional_int(data.get("customer_id"), "customer_id"),
            register_session_id=parse_optional_int(data.get("register_session_id"), "register_session_id"),
            document_type=data.get("document_type"),
            document_id=str(data["document_id"]) if data.get("document_id") is not None else None,
            concept=data.get("concept"),
        )
        result = allocation_service.allocate(
            data["total_due"],
            [PaymentLeg.from_dict(leg) for leg in raw_legs],
            context,
        )
        return jsonify(result.to_dict()), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to allocate payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT METHOD MAPPINGS
# =============================================================================

@payments_bp.get("/methods")
@require_context
def list_mappings_route():
    mappings = payment_method_service.list_mappings(g.tenant_id)
    mapped = {m.payment_method for m in mappings}
    return jsonify({
        "mappings": [m.to_dict() for m in mappings],
        "unmapped_methods": [m for m in payment_method_service.ENVELOPE_METHODS if m not in mapped],
    }), 200


@payments_bp.put("/methods/<method>")
@require_context
@require_admin
def map_method_route(method):
    """
    Request body:
    {
        "cash_account_id": 2
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "cash_account_id")
        mapping = payment_method_service.map_method(
            g.tenant_id,
            method,
            parse_int(data["cash_account_id"], "cash_account_id"),
        )
        return jsonify({"mapping": mapping.to_dict()}), 200
    except LedgerError as e:
        return _error(e)


@payments_bp.delete("/methods/<method>")
@require_context
@require_admin
def unmap_method_route(method):
    try:
        removed = payment_method_service.unmap_method(g.tenant_id, method)
        return jsonify({"removed": removed}), 200
    except LedgerError as e:
        return _error(e)


def _error(e: LedgerError):
    return jsonify(e.to_dict()), e.status_code
