"""
Users, sessions, customer/supplier master data and CLI commands.
"""

import pytest

from storecore.errors import AuthenticationError, ConflictError, PermissionDeniedError, ValidationError
from storecore.extensions import db
from storecore.models import AuditLog, Product, SessionToken
from storecore.services import auth_service, customer_service, sales_service, session_service, supplier_service

PASSWORD = "Password123"


class TestUsersAndSessions:
    def test_password_is_hashed(self, owner):
        assert owner.password_hash != PASSWORD
        assert auth_service.verify_password(PASSWORD, owner.password_hash)
        assert not auth_service.verify_password("Password124", owner.password_hash)

    def test_weak_password(self, db_session):
        with pytest.raises(ValidationError):
            auth_service.create_user(username="newbie", name="New", password="short", role="CASHIER")

    def test_duplicate_username(self, owner):
        with pytest.raises(ConflictError):
            auth_service.create_user(username="owner", name="Again", password=PASSWORD, role="OWNER")

    def test_authenticate(self, owner):
        assert auth_service.authenticate("owner", PASSWORD).id == owner.id
        with pytest.raises(AuthenticationError):
            auth_service.authenticate("owner", "Wrong12345")
        with pytest.raises(AuthenticationError):
            auth_service.authenticate("ghost", PASSWORD)

    def test_session_lifecycle(self, owner):
        session, token = session_service.create_session(owner.id)

        stored = db.session.get(SessionToken, session.id)
        assert stored.token_hash == session_service.hash_token(token)
        assert token not in stored.token_hash
        assert session_service.validate_session(token).id == owner.id

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None


class TestCustomersAndSuppliers:
    def test_duplicate_phone(self, customer, owner):
        with pytest.raises(ConflictError):
            customer_service.create_customer(name="Someone", phone="9000000001", actor_user_id=owner.id)

    def test_customer_search(self, customer):
        items, total = customer_service.list_customers(search="asha")
        assert total == 1
        assert items[0].id == customer.id

    def test_supplier_opening_balance(self, owner):
        supplier = supplier_service.create_supplier(
            name="Dairy Co", phone="8000000002", opening_balance_cents=2500, actor_user_id=owner.id
        )
        assert supplier.opening_balance_cents == 2500
        assert supplier.current_balance_cents == 2500

    def test_update_customer(self, customer, owner):
        updated = customer_service.update_customer(
            customer.id, {"name": "Asha R.", "email": "asha@example.com"}, actor_user_id=owner.id
        )
        assert updated.name == "Asha R."
        assert updated.email == "asha@example.com"

        audit = db.session.query(AuditLog).filter_by(action="UPDATE_CUSTOMER", entity_id=customer.id).one()
        assert audit.details == {"name": "Asha R.", "email": "asha@example.com"}

    def test_update_customer_stats_rejected(self, customer, owner):
        with pytest.raises(ValidationError) as exc_info:
            customer_service.update_customer(customer.id, {"loyalty_points": 500}, actor_user_id=owner.id)
        assert exc_info.value.details["field"] == "loyalty_points"

    def test_update_customer_phone_taken(self, customer, owner):
        other = customer_service.create_customer(name="Ravi", phone="9000000002", actor_user_id=owner.id)
        with pytest.raises(ConflictError):
            customer_service.update_customer(other.id, {"phone": "9000000001"}, actor_user_id=owner.id)

    def test_customer_sales_newest_first(self, customer, make_product, cashier):
        product = make_product(stock=10, min_stock=0)
        sales = [
            sales_service.create_sale(
                lines=[{"product_id": product.id, "quantity": 1}],
                payment_method="CASH",
                actor_user_id=cashier.id,
                customer_id=customer.id,
            )
            for _ in range(3)
        ]
        sales_service.create_sale(
            lines=[{"product_id": product.id, "quantity": 1}], payment_method="CASH", actor_user_id=cashier.id
        )

        history = customer_service.list_customer_sales(customer.id)

        assert [s.id for s in history] == [s.id for s in reversed(sales)]
        assert len(customer_service.list_customer_sales(customer.id, limit=2)) == 2

    def test_update_supplier(self, supplier, owner):
        updated = supplier_service.update_supplier(
            supplier.id, {"payment_terms": "Net 15", "address": "Market Road"}, actor_user_id=owner.id
        )
        assert updated.payment_terms == "Net 15"
        assert updated.address == "Market Road"

    def test_supplier_balance_not_editable(self, supplier, owner):
        with pytest.raises(ValidationError) as exc_info:
            supplier_service.update_supplier(supplier.id, {"current_balance_cents": 0}, actor_user_id=owner.id)
        assert exc_info.value.details["field"] == "current_balance_cents"

    def test_supplier_with_balance_stays_active(self, owner):
        supplier = supplier_service.create_supplier(
            name="Dairy Co", phone="8000000002", opening_balance_cents=2500, actor_user_id=owner.id
        )
        with pytest.raises(ConflictError) as exc_info:
            supplier_service.update_supplier(supplier.id, {"is_active": False}, actor_user_id=owner.id)
        assert exc_info.value.details["current_balance_cents"] == 2500


class TestUserManagement:
    def test_manager_cannot_create_owner(self, manager):
        with pytest.raises(PermissionDeniedError):
            auth_service.create_user(
                username="boss2", name="Boss", password=PASSWORD, role="OWNER", actor_user_id=manager.id
            )

    def test_update_role(self, owner, cashier):
        updated = auth_service.update_user(cashier.id, {"role": "MANAGER"}, actor=owner)
        assert updated.role == "MANAGER"

    def test_manager_cannot_touch_owner(self, owner, manager):
        with pytest.raises(PermissionDeniedError):
            auth_service.update_user(owner.id, {"name": "Renamed"}, actor=manager)
        with pytest.raises(PermissionDeniedError):
            auth_service.update_user(manager.id, {"role": "OWNER"}, actor=manager)

    def test_cannot_change_own_role(self, owner):
        with pytest.raises(ValidationError):
            auth_service.update_user(owner.id, {"role": "CASHIER"}, actor=owner)

    def test_deactivate_revokes_sessions(self, owner, cashier):
        _, token = session_service.create_session(cashier.id)

        user, revoked = auth_service.set_user_active(cashier.id, False, actor=owner)

        assert user.is_active is False
        assert revoked == 1
        assert session_service.validate_session(token) is None
        with pytest.raises(AuthenticationError):
            auth_service.authenticate("cashier", PASSWORD)

        with pytest.raises(ConflictError):
            auth_service.set_user_active(cashier.id, False, actor=owner)
        auth_service.set_user_active(cashier.id, True, actor=owner)
        assert auth_service.authenticate("cashier", PASSWORD).id == cashier.id

    def test_cannot_deactivate_self(self, owner):
        with pytest.raises(ValidationError):
            auth_service.set_user_active(owner.id, False, actor=owner)

    def test_reset_password(self, owner, cashier):
        _, token = session_service.create_session(cashier.id)

        assert auth_service.reset_password(cashier.id, "Fresh2026pass", actor=owner) == 1

        assert session_service.validate_session(token) is None
        assert auth_service.authenticate("cashier", "Fresh2026pass").id == cashier.id
        with pytest.raises(ValidationError):
            auth_service.reset_password(cashier.id, "weak", actor=owner)

    def test_list_users(self, owner, cashier, manager):
        auth_service.set_user_active(cashier.id, False, actor=owner)

        assert [u.username for u in auth_service.list_users()] == ["manager", "owner"]
        assert len(auth_service.list_users(include_inactive=True)) == 3
        assert [u.username for u in auth_service.list_users(role="MANAGER")] == ["manager"]


class TestCli:
    def test_create_user(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--username", "cli-owner", "--name", "Cli Owner",
            "--role", "OWNER", "--password", PASSWORD,
        ])
        assert result.exit_code == 0, result.output
        assert "Created user cli-owner" in result.output

    def test_ledger_verify_ok(self, app, make_product):
        make_product(stock=3)
        result = app.test_cli_runner().invoke(args=["ledger", "verify"])
        assert result.exit_code == 0
        assert "Ledger consistent" in result.output

    def test_ledger_verify_reports_drift(self, app, make_product):
        product = make_product(stock=3)
        db.session.execute(
            Product.__table__.update().where(Product.id == product.id).values(current_stock=9)
        )
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["ledger", "verify", "--product-id", str(product.id)])

        assert result.exit_code == 1
        assert f"FAIL  product {product.id}" in result.output
