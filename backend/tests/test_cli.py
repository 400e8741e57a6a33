"""
Flask CLI tests.

Verifies:
- system init seeds the roles and the bootstrap admin, and is idempotent
- employees create/list round through the employee service
- stock replenish appends an entry; stock verify reports drift
"""

import pytest

from conftest import PASSWORD
from shopledger.extensions import db
from shopledger.models import Product, Role, StockEntry, User
from shopledger.services import employee_service


@pytest.fixture(scope='function')
def runner(app, db_session):
    return app.test_cli_runner()


def _reload():
    db.session.expire_all()


class TestSystemInit:
    def test_seeds_roles_and_admin(self, app, runner):
        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 0, result.output
        assert "PASS Roles ready: admin, biller, inventory, manager" in result.output
        assert "PASS Created admin employee: ADM001" in result.output

        _reload()
        assert {r.name for r in db.session.query(Role).all()} == {"admin", "manager", "inventory", "biller"}
        admin = db.session.query(User).filter_by(employee_id="ADM001").one()
        assert admin.role_name == "admin"
        assert employee_service.verify_password(app.config["ADMIN_PASSWORD"], admin.password_hash)

    def test_second_run_is_idempotent(self, runner):
        runner.invoke(args=["system", "init"])

        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 0, result.output
        assert "PASS Admin employee already exists: ADM001" in result.output
        _reload()
        assert db.session.query(User).count() == 1
        assert db.session.query(Role).count() == 4

    def test_weak_admin_password_fails_cleanly(self, app, runner, monkeypatch):
        monkeypatch.setitem(app.config, "ADMIN_PASSWORD", "short")

        result = runner.invoke(args=["system", "init"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        _reload()
        assert db.session.query(User).count() == 0


class TestEmployeesCommands:
    def test_create_and_list(self, runner, setup_roles):
        created = runner.invoke(args=[
            "employees", "create", "--username", "Asha", "--role", "biller", "--password", PASSWORD,
        ])
        assert created.exit_code == 0, created.output
        assert "PASS Created BIL001 (biller) for Asha" in created.output

        listed = runner.invoke(args=["employees", "list"])
        assert listed.exit_code == 0
        assert "BIL001" in listed.output
        assert "Asha" in listed.output

    def test_list_empty(self, runner):
        result = runner.invoke(args=["employees", "list"])
        assert "No employees found." in result.output


class TestStockCommands:
    def test_replenish(self, runner, product):
        result = runner.invoke(args=[
            "stock", "replenish", "--product-id", str(product.id), "--quantity", "7", "--note", "Delivery",
        ])

        assert result.exit_code == 0, result.output
        assert "PASS Soap: stock now 12" in result.output
        _reload()
        assert db.session.query(StockEntry).filter_by(product_id=product.id).count() == 2

    def test_replenish_rejects_bad_quantity(self, runner, product):
        result = runner.invoke(args=["stock", "replenish", "--product-id", str(product.id), "--quantity", "0"])

        assert result.exit_code == 1
        assert "Error:" in result.output
        _reload()
        assert db.session.query(Product.current_stock).filter_by(id=product.id).scalar() == 5

    def test_verify_clean_ledger(self, runner, product):
        result = runner.invoke(args=["stock", "verify"])

        assert result.exit_code == 0, result.output
        assert "PASS Checked 1 products, 0 with drift" in result.output

    def test_verify_reports_drift(self, runner, product):
        db.session.query(Product).filter_by(id=product.id).update({"current_stock": 2})
        db.session.commit()

        result = runner.invoke(args=["stock", "verify"])

        assert result.exit_code == 1
        assert f"FAIL product {product.id} (Soap): current=2 expected=5 drift=-3" in result.output
        assert "WARN Checked 1 products, 1 with drift" in result.output
