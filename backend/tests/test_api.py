"""
HTTP API tests.

Verifies:
- Requests without a context return 401
- Cashier role denied administrative operations (403)
- Business-rule failures come back as {"error", "code", "details"}
- End-to-end flows through the blueprints
"""

from decimal import Decimal

import pytest

from ledger.models import CashAccount, CashAccountMovement, CustomerAccount


# =============================================================================
# CONTEXT AND ROLES: 401 / 403
# =============================================================================


class TestContextRequired:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/accounts/cash"),
            ("POST", "/api/accounts/cash"),
            ("GET", "/api/accounts/customer/1/balance"),
            ("POST", "/api/accounts/customers/1/charges"),
            ("POST", "/api/payments/allocate"),
            ("GET", "/api/payments/methods"),
            ("GET", "/api/registers/sessions"),
            ("POST", "/api/registers/sessions"),
            ("GET", "/api/registers/movement-types"),
            ("GET", "/api/registers/withdrawals"),
            ("POST", "/api/registers/sessions/1/withdrawals"),
        ],
    )
    def test_requires_context(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_unknown_role_is_rejected(self, client, db_session, tenant_a, headers_for):
        resp = client.get("/api/accounts/cash", headers=headers_for(tenant_a.id, role="JANITOR"))
        assert resp.status_code == 401

    def test_non_numeric_tenant_is_rejected(self, client, db_session):
        headers = {"X-Tenant-Id": "abc", "X-Actor-Id": "1", "X-Actor-Role": "ADMIN"}
        resp = client.get("/api/accounts/cash", headers=headers)
        assert resp.status_code == 401


class TestCashierDenied:
    def test_cannot_create_cash_account(self, client, cashier_headers):
        resp = client.post("/api/accounts/cash", json={"name": "Safe"}, headers=cashier_headers)
        assert resp.status_code == 403

    def test_cannot_transfer_between_envelopes(self, client, cashier_headers, treasury_a, bank_a):
        resp = client.post(
            "/api/accounts/cash/transfers",
            json={"from_account_id": treasury_a.id, "to_account_id": bank_a.id, "amount": "1"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_map_payment_method(self, client, cashier_headers, bank_a):
        resp = client.put(
            "/api/payments/methods/DEBIT_CARD",
            json={"cash_account_id": bank_a.id},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_adjust(self, client, cashier_headers, treasury_a):
        resp = client.post(
            f"/api/accounts/cash/{treasury_a.id}/adjustments",
            json={"amount": "10", "concept": "Found money"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_seed_movement_types(self, client, cashier_headers):
        resp = client.post("/api/registers/movement-types/seed", headers=cashier_headers)
        assert resp.status_code == 403

    def test_super_admin_passes(self, client, db_session, tenant_a, headers_for):
        resp = client.post(
            "/api/accounts/cash",
            json={"name": "Safe"},
            headers=headers_for(tenant_a.id, role="SUPER_ADMIN"),
        )
        assert resp.status_code == 201


# =============================================================================
# SYSTEM
# =============================================================================


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"]["status"] == "healthy"


# =============================================================================
# ACCOUNTS
# =============================================================================


class TestAccountsApi:
    def test_customer_account_created_on_first_access(self, client, db_session, admin_headers, customer_a):
        resp = client.get(f"/api/accounts/customers/{customer_a.id}", headers=admin_headers)
        assert resp.status_code == 200
        account = resp.get_json()["account"]
        assert account["balance"] == "0.00"
        assert account["kind"] == "customer"
        assert db_session.query(CustomerAccount).count() == 1

    def test_unknown_customer(self, client, db_session, admin_headers):
        resp = client.get("/api/accounts/customers/9999", headers=admin_headers)
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "ACCOUNT_NOT_FOUND"

    def test_charge_over_limit_returns_error_shape(self, client, db_session, admin_headers, customer_a):
        account = client.get(f"/api/accounts/customers/{customer_a.id}", headers=admin_headers).get_json()["account"]
        resp = client.patch(
            f"/api/accounts/customer/{account['id']}/settings",
            json={"credit_limit": "100"},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = client.post(
            f"/api/accounts/customers/{customer_a.id}/charges",
            json={"amount": "150.00", "concept": "Too much"},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "INSUFFICIENT_CREDIT"
        assert body["details"]["account_id"] == account["id"]
        assert body["details"]["attempted"] == "150.00"
        assert body["error"]

    def test_charge_then_pay(self, client, db_session, admin_headers, customer_a, treasury_a):
        resp = client.post(
            f"/api/accounts/customers/{customer_a.id}/charges",
            json={"amount": "300", "document_id": "A-1"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        charge = resp.get_json()["movement"]
        assert charge["amount"] == "-300.00"
        assert charge["balance_after"] == "-300.00"

        resp = client.post(
            f"/api/accounts/customers/{customer_a.id}/payments",
            json={"amount": "100", "cash_account_id": treasury_a.id},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["customer_movement"]["balance_after"] == "-200.00"
        assert body["cash_movement"]["balance_after"] == "100.00"

        account_id = charge["account_id"]
        resp = client.get(f"/api/accounts/customer/{account_id}/balance", headers=admin_headers)
        assert resp.get_json()["balance"] == "-200.00"

        resp = client.get(f"/api/accounts/customer/{account_id}/movements", headers=admin_headers)
        types = [m["type"] for m in resp.get_json()["movements"]]
        assert types == ["PAYMENT", "CHARGE"]

    def test_invalid_amount(self, client, db_session, admin_headers, customer_a):
        resp = client.post(
            f"/api/accounts/customers/{customer_a.id}/charges",
            json={"amount": "ten"},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_AMOUNT"

    def test_missing_body(self, client, db_session, admin_headers, customer_a):
        resp = client.post(f"/api/accounts/customers/{customer_a.id}/charges", headers=admin_headers)
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_unknown_kind(self, client, db_session, admin_headers):
        resp = client.get("/api/accounts/vault/1/balance", headers=admin_headers)
        assert resp.status_code == 400

    def test_supplier_invoice_and_overpayment(self, client, db_session, admin_headers, supplier_a):
        resp = client.post(
            f"/api/accounts/suppliers/{supplier_a.id}/invoices",
            json={"amount": "500", "document_id": "FC-1"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["movement"]["balance_after"] == "500.00"

        resp = client.post(
            f"/api/accounts/suppliers/{supplier_a.id}/payments",
            json={"amount": "600"},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "INSUFFICIENT_FUNDS"

    def test_cash_account_lifecycle(self, client, db_session, admin_headers):
        resp = client.post(
            "/api/accounts/cash",
            json={"name": "Petty cash", "account_type": "cash"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        account_id = resp.get_json()["cash_account"]["id"]

        resp = client.post("/api/accounts/cash", json={"name": "Petty cash"}, headers=admin_headers)
        assert resp.status_code == 400

        resp = client.post(
            f"/api/accounts/cash/{account_id}/movements",
            json={"type": "RECEIVED", "amount": "50", "concept": "Float"},
            headers=admin_headers,
        )
        assert resp.status_code == 201

        resp = client.delete(f"/api/accounts/cash/{account_id}", headers=admin_headers)
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "ACCOUNT_HAS_MOVEMENTS"

        resp = client.patch(f"/api/accounts/cash/{account_id}", json={"is_active": False}, headers=admin_headers)
        assert resp.status_code == 200
        resp = client.get("/api/accounts/cash", headers=admin_headers)
        assert resp.get_json()["cash_accounts"] == []

    def test_delete_unused_cash_account(self, client, db_session, admin_headers, bank_a):
        resp = client.delete(f"/api/accounts/cash/{bank_a.id}", headers=admin_headers)
        assert resp.status_code == 200
        resp = client.get(f"/api/accounts/cash/{bank_a.id}/balance", headers=admin_headers)
        assert resp.status_code == 404

    def test_transfer_and_verify(self, client, db_session, admin_headers, treasury_a, bank_a):
        client.post(
            f"/api/accounts/cash/{treasury_a.id}/movements",
            json={"type": "RECEIVED", "amount": "1000", "concept": "Float"},
            headers=admin_headers,
        )
        resp = client.post(
            "/api/accounts/cash/transfers",
            json={"from_account_id": treasury_a.id, "to_account_id": bank_a.id, "amount": "400"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["out"]["transfer_id"] == body["in"]["transfer_id"] == body["transfer_id"]
        assert body["out"]["related_account_id"] == bank_a.id

        resp = client.get(f"/api/accounts/cash/{treasury_a.id}/verify", headers=admin_headers)
        assert resp.status_code == 200
        report = resp.get_json()
        assert report["ok"] is True
        assert report["stored_balance"] == "600.00"

    def test_adjustment(self, client, db_session, admin_headers, treasury_a):
        resp = client.post(
            f"/api/accounts/cash/{treasury_a.id}/adjustments",
            json={"amount": "-1", "concept": "Count correction"},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["details"]["available"] == "0.00"

        resp = client.post(
            f"/api/accounts/cash/{treasury_a.id}/adjustments",
            json={"amount": "12.345", "concept": "Count correction"},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        assert resp.get_json()["movement"]["amount"] == "12.35"


class TestTenantScope:
    def test_foreign_account_is_not_found(self, client, db_session, admin_headers_b, treasury_a):
        resp = client.get(f"/api/accounts/cash/{treasury_a.id}/balance", headers=admin_headers_b)
        assert resp.status_code == 404

    def test_foreign_customer_cannot_be_charged(self, client, db_session, admin_headers_b, customer_a):
        resp = client.post(
            f"/api/accounts/customers/{customer_a.id}/charges",
            json={"amount": "10"},
            headers=admin_headers_b,
        )
        assert resp.status_code == 404
        assert db_session.query(CustomerAccount).count() == 0

    def test_foreign_transfer_moves_nothing(self, client, db_session, admin_headers, admin_headers_b, treasury_a):
        client.post(
            f"/api/accounts/cash/{treasury_a.id}/movements",
            json={"type": "RECEIVED", "amount": "100", "concept": "Float"},
            headers=admin_headers,
        )
        resp = client.post("/api/accounts/cash", json={"name": "Beta till"}, headers=admin_headers_b)
        beta_id = resp.get_json()["cash_account"]["id"]

        resp = client.post(
            "/api/accounts/cash/transfers",
            json={"from_account_id": treasury_a.id, "to_account_id": beta_id, "amount": "50"},
            headers=admin_headers_b,
        )
        assert resp.status_code == 404
        assert db_session.query(CashAccountMovement).count() == 1


# =============================================================================
# PAYMENTS
# =============================================================================


class TestPaymentsApi:
    def test_mappings(self, client, db_session, admin_headers, bank_a):
        resp = client.put(
            "/api/payments/methods/debit_card",
            json={"cash_account_id": bank_a.id},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["mapping"]["payment_method"] == "DEBIT_CARD"

        body = client.get("/api/payments/methods", headers=admin_headers).get_json()
        assert [m["payment_method"] for m in body["mappings"]] == ["DEBIT_CARD"]
        assert "DEBIT_CARD" not in body["unmapped_methods"]
        assert "QR" in body["unmapped_methods"]

        resp = client.delete("/api/payments/methods/DEBIT_CARD", headers=admin_headers)
        assert resp.get_json() == {"removed": True}

    def test_account_method_cannot_be_mapped(self, client, db_session, admin_headers, bank_a):
        resp = client.put(
            "/api/payments/methods/ACCOUNT",
            json={"cash_account_id": bank_a.id},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_allocate(self, client, db_session, admin_headers, cashier_headers, bank_a, customer_a):
        client.put("/api/payments/methods/DEBIT_CARD", json={"cash_account_id": bank_a.id}, headers=admin_headers)

        resp = client.post(
            "/api/payments/allocate",
            json={
                "total_due": "1000.00",
                "legs": [
                    {"method": "DEBIT_CARD", "amount": "700.00", "reference": "AUTH-1"},
                    {"method": "ACCOUNT", "amount": "200.00"},
                    {"method": "QR", "amount": "100.00"},
                ],
                "customer_id": customer_a.id,
                "document_type": "SALE",
                "document_id": 42,
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["total_paid"] == "1000.00"
        assert [m["kind"] for m in body["movements"]] == ["cash", "customer"]
        assert body["movements"][0]["reference"] == "AUTH-1"
        assert body["movements"][1]["document_id"] == "42"
        assert body["unmapped_legs"][0]["method"] == "QR"

    def test_unbalanced(self, client, db_session, cashier_headers):
        resp = client.post(
            "/api/payments/allocate",
            json={"total_due": "100", "legs": [{"method": "CASH", "amount": "90"}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "UNBALANCED_PAYMENT"
        assert body["details"]["difference"] == "-10.00"

    def test_legs_must_be_a_list(self, client, db_session, cashier_headers):
        resp = client.post(
            "/api/payments/allocate",
            json={"total_due": "100", "legs": {"method": "CASH", "amount": "100"}},
            headers=cashier_headers,
        )
        assert resp.status_code == 400

    def test_non_string_method(self, client, db_session, cashier_headers):
        resp = client.post(
            "/api/payments/allocate",
            json={"total_due": "10", "legs": [{"method": 5, "amount": "10"}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"

    def test_oversized_total(self, client, db_session, cashier_headers):
        resp = client.post(
            "/api/payments/allocate",
            json={"total_due": "1" + "0" * 28, "legs": [{"method": "CASH", "amount": "10"}]},
            headers=cashier_headers,
        )
        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "INVALID_AMOUNT"
        assert body["details"]["field"] == "total_due"

    def test_closed_session_rejects_card_leg(self, client, db_session, admin_headers, cashier_headers, bank_a, location_a):
        client.put("/api/payments/methods/DEBIT_CARD", json={"cash_account_id": bank_a.id}, headers=admin_headers)
        session = client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "0"},
            headers=cashier_headers,
        ).get_json()["session"]
        client.post(
            f"/api/registers/sessions/{session['id']}/close",
            json={"declared_balance": "0"},
            headers=cashier_headers,
        )

        resp = client.post(
            "/api/payments/allocate",
            json={
                "total_due": "10",
                "legs": [{"method": "DEBIT_CARD", "amount": "10"}],
                "register_session_id": session["id"],
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "SESSION_ALREADY_CLOSED"

        resp = client.post(
            "/api/payments/allocate",
            json={
                "total_due": "10",
                "legs": [{"method": "DEBIT_CARD", "amount": "10"}],
                "register_session_id": 999999,
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "SESSION_NOT_FOUND"

        db_session.expire_all()
        assert db_session.get(CashAccount, bank_a.id).balance == Decimal("0.00")


# =============================================================================
# REGISTERS
# =============================================================================


class TestRegistersApi:
    def test_shift_flow(self, client, db_session, admin_headers, cashier_headers, location_a):
        client.post("/api/registers/movement-types/seed", headers=admin_headers)
        types = client.get(
            "/api/registers/movement-types?transaction_type=expense",
            headers=cashier_headers,
        ).get_json()["movement_types"]
        expense = next(t for t in types if t["name"] == "General expense")

        resp = client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "1000"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        session = resp.get_json()["session"]
        assert session["operator_id"] == 2
        assert session["status"] == "OPEN"

        resp = client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "0"},
            headers=cashier_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "SESSION_ALREADY_OPEN"

        resp = client.post(
            "/api/payments/allocate",
            json={
                "total_due": "500",
                "legs": [{"method": "CASH", "amount": "500"}],
                "register_session_id": session["id"],
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201

        resp = client.post(
            f"/api/registers/sessions/{session['id']}/transactions",
            json={"movement_type_id": expense["id"], "amount": "200", "concept": "Cleaning"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201

        resp = client.get(f"/api/registers/sessions/{session['id']}", headers=cashier_headers)
        assert resp.get_json()["session"]["expected_balance_now"] == "1300.00"

        resp = client.post(
            f"/api/registers/sessions/{session['id']}/close",
            json={"declared_balance": "1250"},
            headers=cashier_headers,
        )
        assert resp.status_code == 200
        closed = resp.get_json()["session"]
        assert closed["expected_balance"] == "1300.00"
        assert closed["discrepancy"] == "-50.00"

        resp = client.post(
            f"/api/registers/sessions/{session['id']}/close",
            json={"declared_balance": "1300"},
            headers=cashier_headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "SESSION_ALREADY_CLOSED"

        summary = client.get(
            f"/api/registers/sessions/{session['id']}/summary",
            headers=cashier_headers,
        ).get_json()
        assert summary["is_closed"] is True
        assert summary["payment_breakdown"]["CASH"]["total"] == "500.00"

    def test_open_session_lookup(self, client, db_session, cashier_headers, location_a):
        resp = client.get(f"/api/registers/sessions/open?location_id={location_a.id}", headers=cashier_headers)
        assert resp.get_json() == {"session": None}

        client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "10"},
            headers=cashier_headers,
        )
        resp = client.get(f"/api/registers/sessions/open?location_id={location_a.id}", headers=cashier_headers)
        assert resp.get_json()["session"]["opening_balance"] == "10.00"

    def test_transfer_to_treasury(self, client, db_session, cashier_headers, location_a, treasury_a):
        session = client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "300"},
            headers=cashier_headers,
        ).get_json()["session"]

        resp = client.post(
            f"/api/registers/sessions/{session['id']}/transfer-to-treasury",
            json={"treasury_account_id": treasury_a.id, "amount": "250"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["register_movement"]["balance_after"] == "50.00"
        assert body["cash_movement"]["balance_after"] == "250.00"

        db_session.expire_all()
        assert db_session.get(CashAccount, treasury_a.id).balance == Decimal("250.00")

    def test_system_movement_type_is_read_only(self, client, db_session, admin_headers):
        created = client.post("/api/registers/movement-types/seed", headers=admin_headers).get_json()["created"]
        system = next(t for t in created if t["is_system"])
        resp = client.patch(
            f"/api/registers/movement-types/{system['id']}",
            json={"name": "Renamed"},
            headers=admin_headers,
        )
        assert resp.status_code == 400

        again = client.post("/api/registers/movement-types/seed", headers=admin_headers).get_json()["created"]
        assert again == []

    def test_withdrawals(self, client, db_session, admin_headers, cashier_headers, location_a, treasury_a):
        session = client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "2000"},
            headers=cashier_headers,
        ).get_json()["session"]
        url = f"/api/registers/sessions/{session['id']}/withdrawals"

        resp = client.post(
            url,
            json={"amount": "600", "reason": "OWNER_DRAW", "recipient_name": "Owner"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "WITHDRAWAL_LIMIT_EXCEEDED"

        resp = client.post(
            url,
            json={
                "amount": "600",
                "reason": "BANK_DEPOSIT",
                "recipient_name": "Courier",
                "destination_account_id": treasury_a.id,
            },
            headers=admin_headers,
        )
        assert resp.status_code == 201
        withdrawal = resp.get_json()["withdrawal"]
        assert withdrawal["amount"] == "600.00"
        assert withdrawal["transfer_id"]

        resp = client.post(
            url,
            json={"amount": "40", "reason": "PETTY_CASH", "recipient_name": "Ana"},
            headers=cashier_headers,
        )
        assert resp.status_code == 201

        resp = client.post(url, json={"amount": "40", "reason": "PETTY_CASH"}, headers=cashier_headers)
        assert resp.status_code == 400

        listed = client.get(
            f"/api/registers/withdrawals?session_id={session['id']}&reason=bank_deposit",
            headers=cashier_headers,
        ).get_json()["withdrawals"]
        assert [w["recipient_name"] for w in listed] == ["Courier"]

        resp = client.get("/api/registers/withdrawals?since=yesterday", headers=cashier_headers)
        assert resp.status_code == 400

        db_session.expire_all()
        assert db_session.get(CashAccount, treasury_a.id).balance == Decimal("600.00")
        summary = client.get(
            f"/api/registers/sessions/{session['id']}/summary",
            headers=cashier_headers,
        ).get_json()
        assert summary["withdrawals"] == {"count": 2, "total": "640.00"}
        assert summary["expected_balance"] == "1360.00"

    def test_withdrawals_are_tenant_scoped(self, client, db_session, cashier_headers, admin_headers_b, location_a):
        session = client.post(
            "/api/registers/sessions",
            json={"location_id": location_a.id, "opening_balance": "100"},
            headers=cashier_headers,
        ).get_json()["session"]
        client.post(
            f"/api/registers/sessions/{session['id']}/withdrawals",
            json={"amount": "10", "reason": "OTHER", "recipient_name": "Someone"},
            headers=cashier_headers,
        )

        resp = client.get("/api/registers/withdrawals", headers=admin_headers_b)
        assert resp.get_json() == {"withdrawals": []}

        resp = client.post(
            f"/api/registers/sessions/{session['id']}/withdrawals",
            json={"amount": "10", "reason": "OTHER", "recipient_name": "Someone"},
            headers=admin_headers_b,
        )
        assert resp.status_code == 404
