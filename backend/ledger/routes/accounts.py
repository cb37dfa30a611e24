# Overview: Flask API routes for ledger accounts; parses input and returns JSON responses.

# backend/ledger/routes/accounts.py
"""
Ledger Account API Routes

WHY: Expose balances, movement history and the account-level business
operations (customer charges/payments, supplier invoices/payments, cash
envelopes and transfers between them).

DESIGN:
- Generic endpoints take the account kind in the URL: customer, supplier,
  cash, register
- Every write goes through the services; routes never touch balances
- Business-rule failures come back as {"error", "code", "details"} with
  their status code

SECURITY:
- Tenant scope comes from the request context; ids from other tenants
  resolve to 404
- Settings, deletion, adjustments, envelope movements and transfers
  require ADMIN or SUPER_ADMIN
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_context
from ..errors import LedgerError
from ..services import account_service, ledger_service
from ..services.account_kinds import ADJUSTMENT
from ..validation import parse_bool, parse_int, parse_limit, parse_optional_int, require_fields, require_json

accounts_bp = Blueprint("accounts", __name__, url_prefix="/api/accounts")


def _error(e: LedgerError):
    return jsonify(e.to_dict()), e.status_code


def _server_error(message: str):
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# GENERIC (any kind)
# =============================================================================

@accounts_bp.get("/<kind>/<int:account_id>/balance")
@require_context
def get_balance_route(kind, account_id):
    """Balance, credit limit, available credit and active flag."""
    try:
        return jsonify(ledger_service.get_balance(kind, g.tenant_id, account_id)), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.get("/<kind>/<int:account_id>/movements")
@require_context
def list_movements_route(kind, account_id):
    """
    Movement history, newest first.

    Query params: limit (default 50), offset
    """
    try:
        limit = parse_limit(request.args.get("limit"))
        offset = parse_optional_int(request.args.get("offset"), "offset") or 0
        movements = ledger_service.list_movements(
            kind,
            g.tenant_id,
            account_id,
            limit=limit,
            offset=offset,
            newest_first=True,
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.get("/<kind>/<int:account_id>/verify")
@require_context
@require_admin
def verify_chain_route(kind, account_id):
    """Replay the movement chain and compare with the stored balance."""
    try:
        report = ledger_service.verify_chain(kind, g.tenant_id, account_id)
        return jsonify(report.to_dict()), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.post("/<kind>/<int:account_id>/adjustments")
@require_context
@require_admin
def post_adjustment_route(kind, account_id):
    """
    Correct a balance with a signed ADJUSTMENT.

    Request body:
    {
        "amount": "-20.00",
        "concept": "Count correction",
        "reference": "CNT-14"  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "amount", "concept")
        movement = ledger_service.post(
            tenant_id=g.tenant_id,
            kind=kind,
            account_id=account_id,
            amount=data["amount"],
            movement_type=ADJUSTMENT,
            concept=data["concept"],
            actor_id=g.actor_id,
            reference=data.get("reference"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to post adjustment")


@accounts_bp.delete("/<kind>/<int:account_id>")
@require_context
@require_admin
def delete_account_route(kind, account_id):
    try:
        account_service.delete_account(kind, g.tenant_id, account_id)
        return jsonify({"deleted": True, "account_id": account_id}), 200
    except LedgerError as e:
        return _error(e)


# =============================================================================
# CUSTOMER ACCOUNTS
# =============================================================================

@accounts_bp.get("/customers/<int:customer_id>")
@require_context
def get_customer_account_route(customer_id):
    """Customer's current account; created on first access."""
    try:
        account = account_service.ensure_customer_account(g.tenant_id, customer_id)
        return jsonify({"account": account.to_dict()}), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.patch("/customer/<int:account_id>/settings")
@require_context
@require_admin
def update_customer_settings_route(account_id):
    """
    Request body (all optional):
    {
        "credit_limit": "1000.00",   (0 = unlimited)
        "is_active": false,
        "notes": "..."
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        account = account_service.update_customer_account_settings(
            g.tenant_id,
            account_id,
            credit_limit=data.get("credit_limit"),
            is_active=parse_bool(data.get("is_active"), "is_active"),
            notes=data.get("notes"),
        )
        return jsonify({"account": account.to_dict()}), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.post("/customers/<int:customer_id>/charges")
@require_context
def charge_customer_route(customer_id):
    """
    Request body:
    {
        "amount": "150.00",
        "concept": "Invoice A-0001",  (optional)
        "document_id": "A-0001"  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "amount")
        movement = account_service.charge_customer(
            g.tenant_id,
            customer_id,
            data["amount"],
            actor_id=g.actor_id,
            concept=data.get("concept"),
            reference=data.get("reference"),
            document_type=data.get("document_type"),
            document_id=data.get("document_id"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to charge customer account")


@accounts_bp.post("/customers/<int:customer_id>/payments")
@require_context
def receive_customer_payment_route(customer_id):
    """
    Request body:
    {
        "amount": "200.00",
        "cash_account_id": 3,  (optional, destination envelope)
        "payment_method": "CASH",  (optional)
        "concept": "...",  (optional)
        "reference": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "amount")
        result = account_service.receive_customer_payment(
            g.tenant_id,
            customer_id,
            data["amount"],
            actor_id=g.actor_id,
            cash_account_id=parse_optional_int(data.get("cash_account_id"), "cash_account_id"),
            payment_method=(data.get("payment_method") or "CASH").upper(),
            concept=data.get("concept"),
            reference=data.get("reference"),
        )
        return jsonify({
            "customer_movement": result["customer_movement"].to_dict(),
            "cash_movement": result["cash_movement"].to_dict() if result["cash_movement"] else None,
        }), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to receive customer payment")


# =============================================================================
# SUPPLIER ACCOUNTS
# =============================================================================

@accounts_bp.get("/suppliers/<int:supplier_id>")
@require_context
def get_supplier_account_route(supplier_id):
    try:
        account = account_service.ensure_supplier_account(g.tenant_id, supplier_id)
        return jsonify({"account": account.to_dict()}), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.post("/suppliers/<int:supplier_id>/invoices")
@require_context
@require_admin
def post_supplier_invoice_route(supplier_id):
    """
    Request body:
    {
        "amount": "5000.00",
        "document_id": "FC-0001-00001234",  (optional)
        "concept": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "amount")
        movement = account_service.post_supplier_invoice(
            g.tenant_id,
            supplier_id,
            data["amount"],
            actor_id=g.actor_id,
            document_id=data.get("document_id"),
            concept=data.get("concept"),
            reference=data.get("reference"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to post supplier invoice")


@accounts_bp.post("/suppliers/<int:supplier_id>/payments")
@require_context
@require_admin
def pay_supplier_route(supplier_id):
    """
    Request body:
    {
        "amount": "1500.00",
        "cash_account_id": 3,  (optional, source envelope)
        "payment_method": "TRANSFER",  (optional)
        "concept": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "amount")
        result = account_service.pay_supplier(
            g.tenant_id,
            supplier_id,
            data["amount"],
            actor_id=g.actor_id,
            cash_account_id=parse_optional_int(data.get("cash_account_id"), "cash_account_id"),
            payment_method=(data.get("payment_method") or "CASH").upper(),
            concept=data.get("concept"),
            reference=data.get("reference"),
        )
        return jsonify({
            "supplier_movement": result["supplier_movement"].to_dict(),
            "cash_movement": result["cash_movement"].to_dict() if result["cash_movement"] else None,
        }), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to pay supplier")


# =============================================================================
# CASH ACCOUNTS
# =============================================================================

@accounts_bp.get("/cash")
@require_context
def list_cash_accounts_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    accounts = account_service.list_cash_accounts(g.tenant_id, include_inactive=include_inactive)
    return jsonify({"cash_accounts": [a.to_dict() for a in accounts]}), 200


@accounts_bp.post("/cash")
@require_context
@require_admin
def create_cash_account_route():
    """
    Request body:
    {
        "name": "Treasury",
        "account_type": "CASH",  (optional: CASH, BANK, WALLET, ...)
        "notes": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "name")
        account = account_service.create_cash_account(
            g.tenant_id,
            data["name"],
            account_type=data.get("account_type") or "CASH",
            notes=data.get("notes"),
        )
        return jsonify({"cash_account": account.to_dict()}), 201
    except LedgerError as e:
        return _error(e)


@accounts_bp.patch("/cash/<int:account_id>")
@require_context
@require_admin
def update_cash_account_route(account_id):
    try:
        data = require_json(request.get_json(silent=True))
        account = account_service.update_cash_account(
            g.tenant_id,
            account_id,
            name=data.get("name"),
            is_active=parse_bool(data.get("is_active"), "is_active"),
            notes=data.get("notes"),
        )
        return jsonify({"cash_account": account.to_dict()}), 200
    except LedgerError as e:
        return _error(e)


@accounts_bp.post("/cash/<int:account_id>/movements")
@require_context
@require_admin
def record_cash_movement_route(account_id):
    """
    Manual envelope movement.

    Request body:
    {
        "type": "PAID",  (RECEIVED, PAID, ADJUSTMENT)
        "amount": "300.00",  (positive; signed for ADJUSTMENT)
        "concept": "Electricity bill"
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "type", "amount", "concept")
        movement = account_service.record_cash_movement(
            g.tenant_id,
            account_id,
            data["type"],
            data["amount"],
            actor_id=g.actor_id,
            concept=data["concept"],
            reference=data.get("reference"),
        )
        return jsonify({"movement": movement.to_dict()}), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to record cash movement")


@accounts_bp.post("/cash/transfers")
@require_context
@require_admin
def transfer_between_cash_accounts_route():
    """
    Request body:
    {
        "from_account_id": 1,
        "to_account_id": 2,
        "amount": "1000.00",
        "concept": "..."  (optional)
    }
    """
    try:
        data = require_json(request.get_json(silent=True))
        require_fields(data, "from_account_id", "to_account_id", "amount")
        result = account_service.transfer_between_cash_accounts(
            g.tenant_id,
            parse_int(data["from_account_id"], "from_account_id"),
            parse_int(data["to_account_id"], "to_account_id"),
            data["amount"],
            actor_id=g.actor_id,
            concept=data.get("concept"),
        )
        return jsonify({
            "transfer_id": result["transfer_id"],
            "out": result["out"].to_dict(),
            "in": result["in"].to_dict(),
        }), 201
    except LedgerError as e:
        return _error(e)
    except Exception:
        return _server_error("Failed to transfer between cash accounts")
