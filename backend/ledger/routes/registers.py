# Overview: Flask API routes for cash register sessions and movement types.

# backend/ledger/routes/registers.py
"""
Cash Register API Routes

WHY: Shift accountability. A session is opened with counted cash, collects
drawer movements, and is closed with a declared count that is reconciled
against the ledger.

DESIGN:
- Shift lifecycle: open -> close (immutable once closed)
- Manual INCOME / EXPENSE transactions are categorised by movement type
- Withdrawals record the reason and recipient; cashiers are capped per withdrawal
- Movement type management and seeding are admin-only
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_context
from ..errors import LedgerError
from ..services import ledger_service, movement_type_service, register_service
from ..services.account_kinds import REGISTER_KIND
from ..validation import (
    parse_bool,
    parse_int,
    parse_limit,
    parse_optional_datetime,
    parse_optional_int,
    require_fields,
    require_json,
)

registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _error(e: LedgerError):
    return jsonify(e.to_dict()), e.status_code


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@registers_bp.post("/sessions")
@require_context
def open_session_route():
    """
    Open a register session.

    Request body:
    {
        "location_id": 1,
        "opening_balance": "1000.00",
        "operator_id": 5,  (optional, defaults to the caller)
        "funding_account_id": 2,  (optional treasury envelope)
        "notes": "..."  (optional)
    }

    Returns:
        201: Session opened
        409: A session is already open for this scope
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "location_id", "opening_balance")
        session = register_service.open_session(
            g.tenant_id,
            parse_int(data["location_id"], "location_id"),
            parse_optional_int(data.get("operator_id"), "operator_id") or g.actor_id,
            data["opening_balance"],
            actor_id=g.actor_id,
            funding_account_id=parse_optional_int(data.get("funding_account_id"), "funding_account_id"),
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to open register session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions")
@require_context
def list_sessions_route():
    """Query params: status (OPEN/CLOSED), location_id, limit."""
    try:
        sessions = register_service.list_sessions(
            g.tenant_id,
            status=request.args.get("status"),
            location_id=parse_optional_int(request.args.get("location_id"), "location_id"),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.get("/sessions/open")
@require_context
def get_open_session_route():
    """Query params: location_id or operator_id, depending on the register scope."""
    try:
        session = register_service.get_open_session(
            g.tenant_id,
            location_id=parse_optional_int(request.args.get("location_id"), "location_id"),
            operator_id=parse_optional_int(request.args.get("operator_id"), "operator_id"),
        )
        return jsonify({"session": session.to_dict() if session else None}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.get("/sessions/<int:session_id>")
@require_context
def get_session_route(session_id):
    try:
        session = register_service.get_session(g.tenant_id, session_id)
        d = session.to_dict()
        d["expected_balance_now"] = str(register_service.compute_expected_balance(session))
        return jsonify({"session": d}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.get("/sessions/<int:session_id>/summary")
@require_context
def session_summary_route(session_id):
    try:
        return jsonify(register_service.session_summary(g.tenant_id, session_id)), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.get("/sessions/<int:session_id>/movements")
@require_context
def session_movements_route(session_id):
    try:
        movements = ledger_service.list_movements(REGISTER_KIND, g.tenant_id, session_id)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.post("/sessions/<int:session_id>/transactions")
@require_context
def record_transaction_route(session_id):
    """
    Manual drawer transaction.

    Request body:
    {
        "movement_type_id": 3,
        "amount": "200.00",
        "concept": "Cleaning supplies",  (optional, defaults to the type name)
        "reference": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "movement_type_id", "amount")
        movement = register_service.record_transaction(
            g.tenant_id,
            session_id,
            parse_int(data["movement_type_id"], "movement_type_id"),
            data["amount"],
            actor_id=g.actor_id,
            concept=data.get("concept"),
            reference=data.get("reference"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record register transaction")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/sessions/<int:session_id>/transfer-to-treasury")
@require_context
def transfer_to_treasury_route(session_id):
    """
    Request body:
    {
        "treasury_account_id": 2,
        "amount": "800.00",
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "treasury_account_id", "amount")
        result = register_service.transfer_to_treasury(
            g.tenant_id,
            session_id,
            parse_int(data["treasury_account_id"], "treasury_account_id"),
            data["amount"],
            actor_id=g.actor_id,
            notes=data.get("notes"),
        )
        return jsonify({
            "transfer_id": result["transfer_id"],
            "register_movement": result["register_movement"].to_dict(),
            "cash_movement": result["cash_movement"].to_dict(),
        }), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to transfer to treasury")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/sessions/<int:session_id>/withdrawals")
@require_context
def record_withdrawal_route(session_id):
    """
    Take cash out of the drawer.

    Request body:
    {
        "amount": "300.00",
        "reason": "BANK_DEPOSIT",  (BANK_DEPOSIT, PETTY_CASH, OWNER_DRAW, EXPENSE, OTHER)
        "recipient_name": "J. Perez",
        "concept": "...",  (optional)
        "destination_account_id": 2,  (optional treasury envelope)
        "reference": "..."  (optional)
    }

    Returns:
        201: Withdrawal recorded
        403: Amount above the caller's role limit
        409: Session closed or not enough cash in the drawer
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "amount", "reason", "recipient_name")
        withdrawal = register_service.record_withdrawal(
            g.tenant_id,
            session_id,
            data["amount"],
            reason=data["reason"],
            recipient_name=data["recipient_name"],
            actor_id=g.actor_id,
            role=g.role,
            concept=data.get("concept"),
            destination_account_id=parse_optional_int(data.get("destination_account_id"), "destination_account_id"),
            reference=data.get("reference"),
        )
        return jsonify({"withdrawal": withdrawal.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to record register withdrawal")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/withdrawals")
@require_context
def list_withdrawals_route():
    """Query params: session_id, reason, since, until (ISO-8601), limit."""
    try:
        withdrawals = register_service.list_withdrawals(
            g.tenant_id,
            session_id=parse_optional_int(request.args.get("session_id"), "session_id"),
            reason=request.args.get("reason"),
            since=parse_optional_datetime(request.args.get("since"), "since"),
            until=parse_optional_datetime(request.args.get("until"), "until"),
            limit=parse_limit(request.args.get("limit")),
        )
        return jsonify({"withdrawals": [w.to_dict() for w in withdrawals]}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.post("/sessions/<int:session_id>/close")
@require_context
def close_session_route(session_id):
    """
    Close a session and reconcile.

    Request body:
    {
        "declared_balance": "1250.00",
        "notes": "...",  (optional)
        "deposit_account_id": 2  (optional treasury envelope)
    }

    Returns:
        200: Closed session with expected_balance and discrepancy
        409: Session already closed
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "declared_balance")
        session = register_service.close_session(
            g.tenant_id,
            session_id,
            data["declared_balance"],
            actor_id=g.actor_id,
            notes=data.get("notes"),
            deposit_account_id=parse_optional_int(data.get("deposit_account_id"), "deposit_account_id"),
        )
        return jsonify({"session": session.to_dict()}), 200
    except LedgerError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to close register session")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MOVEMENT TYPES
# =============================================================================

@registers_bp.get("/movement-types")
@require_context
def list_movement_types_route():
    try:
        types = movement_type_service.list_movement_types(
            g.tenant_id,
            transaction_type=request.args.get("transaction_type"),
            include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        )
        return jsonify({"movement_types": [t.to_dict() for t in types]}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.post("/movement-types")
@require_context
@require_admin
def create_movement_type_route():
    """
    Request body:
    {
        "name": "Cleaning",
        "transaction_type": "EXPENSE",
        "description": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "name", "transaction_type")
        movement_type = movement_type_service.create_movement_type(
            g.tenant_id,
            data["name"],
            data["transaction_type"],
            description=data.get("description"),
        )
        return jsonify({"movement_type": movement_type.to_dict()}), 201
    except LedgerError as e:
        return _error(e)


@registers_bp.patch("/movement-types/<int:movement_type_id>")
@require_context
@require_admin
def update_movement_type_route(movement_type_id):
    try:
        data = require_json(request.get_json(silent=True))
        movement_type = movement_type_service.update_movement_type(
            g.tenant_id,
            movement_type_id,
            name=data.get("name"),
            description=data.get("description"),
            is_active=parse_bool(data.get("is_active"), "is_active"),
        )
        return jsonify({"movement_type": movement_type.to_dict()}), 200
    except LedgerError as e:
        return _error(e)


@registers_bp.post("/movement-types/seed")
@require_context
@require_admin
def seed_movement_types_route():
    created = movement_type_service.seed_default_movement_types(g.tenant_id)
    return jsonify({"created": [t.to_dict() for t in created]}), 201
