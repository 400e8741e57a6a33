"""
Stock ledger tests.

Verifies:
- Opening stock is booked as a StockEntry
- Compare-and-swap deduction never goes negative
- Replenish appends exactly one entry
- Reconcile reports zero drift for ledger-consistent data
"""

import pytest

from shopledger.errors import InsufficientStockError, NotFoundError, ValidationError, ConflictError
from shopledger.extensions import db
from shopledger.models import Product, StockEntry
from shopledger.services import stock_service
from shopledger.validation import MAX_QUANTITY


def _stock(product_id: int) -> int:
    return db.session.query(Product.current_stock).filter_by(id=product_id).scalar()


class TestCreateProduct:
    def test_opening_stock_creates_entry(self, product):
        entries = db.session.query(StockEntry).filter_by(product_id=product.id).all()
        assert product.current_stock == 5
        assert len(entries) == 1
        assert entries[0].quantity_added == 5
        assert entries[0].note == "Opening stock"

    def test_zero_opening_stock_has_no_entry(self, make_product):
        p = make_product(name="Empty", stock=0)
        assert p.current_stock == 0
        assert db.session.query(StockEntry).filter_by(product_id=p.id).count() == 0

    def test_brand_is_reused_case_insensitively(self, make_product):
        a = make_product(name="A", brand="Acme")
        b = make_product(name="B", brand="ACME")
        assert a.brand_id == b.brand_id

    def test_current_stock_cannot_be_set_directly(self, admin_user):
        with pytest.raises(ValidationError):
            stock_service.create_product(
                {"name": "X", "brand": "Y", "unit_price_cents": 100, "current_stock": 50},
                actor_id=admin_user.id,
            )

    def test_negative_price_rejected(self, admin_user):
        with pytest.raises(ValidationError):
            stock_service.create_product(
                {"name": "X", "brand": "Y", "unit_price_cents": -1},
                actor_id=admin_user.id,
            )

    def test_missing_brand_rejected(self, admin_user):
        with pytest.raises(ValidationError):
            stock_service.create_product({"name": "X", "unit_price_cents": 100}, actor_id=admin_user.id)

    def test_unknown_category_rejected(self, admin_user):
        with pytest.raises(NotFoundError):
            stock_service.create_product(
                {"name": "X", "brand": "Y", "unit_price_cents": 100, "category_id": 999},
                actor_id=admin_user.id,
            )


class TestDeduct:
    def test_deduct_returns_remaining(self, product):
        remaining = stock_service.deduct(product.id, 3)
        db.session.commit()
        assert remaining == 2
        assert _stock(product.id) == 2

    def test_deduct_refreshes_loaded_product(self, product):
        stock_service.deduct(product.id, 2)
        db.session.commit()
        assert product.current_stock == 3

    def test_insufficient_stock_leaves_stock_unchanged(self, product):
        with pytest.raises(InsufficientStockError) as excinfo:
            stock_service.deduct(product.id, 6)
        db.session.rollback()

        assert excinfo.value.available == 5
        assert excinfo.value.requested == 6
        assert excinfo.value.status_code == 409
        assert _stock(product.id) == 5

    def test_exact_stock_can_be_sold_out(self, product):
        assert stock_service.deduct(product.id, 5) == 0
        db.session.commit()

    @pytest.mark.parametrize("quantity", [0, -1, "2.5", True])
    def test_invalid_quantity_rejected(self, product, quantity):
        with pytest.raises(ValidationError):
            stock_service.deduct(product.id, quantity)

    def test_unknown_product(self, db_session):
        with pytest.raises(NotFoundError):
            stock_service.deduct(4242, 1)


class TestReplenish:
    def test_replenish_adds_entry_and_stock(self, product, inventory_user):
        entry = stock_service.replenish(product.id, 10, inventory_user.id, note="Delivery")

        assert entry.quantity_added == 10
        assert entry.added_by_user_id == inventory_user.id
        assert _stock(product.id) == 15
        assert db.session.query(StockEntry).filter_by(product_id=product.id).count() == 2

    def test_replenish_rejects_non_positive(self, product, inventory_user):
        with pytest.raises(ValidationError):
            stock_service.replenish(product.id, 0, inventory_user.id)
        assert _stock(product.id) == 5

    @pytest.mark.parametrize("quantity", [MAX_QUANTITY + 1, 2 ** 62, 10 ** 20, "100000000000000000000"])
    def test_replenish_rejects_oversized_quantity(self, product, inventory_user, quantity):
        with pytest.raises(ValidationError):
            stock_service.replenish(product.id, quantity, inventory_user.id)
        assert _stock(product.id) == 5
        assert db.session.query(StockEntry).filter_by(product_id=product.id).count() == 1

    def test_stock_stays_integer_at_the_cap(self, product, inventory_user):
        stock_service.replenish(product.id, MAX_QUANTITY, inventory_user.id)
        stock_service.replenish(product.id, MAX_QUANTITY, inventory_user.id)

        stock = _stock(product.id)
        assert isinstance(stock, int)
        assert stock == 2 * MAX_QUANTITY + 5

    def test_oversized_opening_stock_rejected(self, make_product):
        with pytest.raises(ValidationError):
            make_product(stock=10 ** 20)
        assert db.session.query(Product).count() == 0

    def test_replenish_unknown_product(self, inventory_user):
        with pytest.raises(NotFoundError):
            stock_service.replenish(999, 1, inventory_user.id)

    def test_entries_listed_newest_first(self, product, inventory_user):
        stock_service.replenish(product.id, 1, inventory_user.id, note="second")
        entries = stock_service.list_stock_entries(product.id)
        assert [e.note for e in entries] == ["second", "Opening stock"]


class TestCatalogue:
    def test_update_product_rejects_stock_edit(self, product):
        with pytest.raises(ValidationError):
            stock_service.update_product(product.id, {"current_stock": 100})

    def test_update_product_price(self, product):
        updated = stock_service.update_product(product.id, {"unit_price_cents": 5500})
        assert updated.unit_price_cents == 5500

    def test_deactivated_products_hidden_by_default(self, product):
        stock_service.deactivate_product(product.id)
        assert stock_service.list_products()["count"] == 0
        assert stock_service.list_products(include_inactive=True)["count"] == 1

    def test_low_stock_list(self, make_product):
        low = make_product(name="Low", stock=2, low_stock_threshold=3)
        make_product(name="Plenty", stock=50, low_stock_threshold=3)
        assert [p.id for p in stock_service.list_low_stock()] == [low.id]

    def test_search_by_name_and_brand(self, make_product):
        make_product(name="Blue Pen", brand="Reynolds")
        make_product(name="Notebook", brand="Classmate")
        assert [p.name for p in stock_service.list_products(q="pen")["items"]] == ["Blue Pen"]
        assert [p.name for p in stock_service.list_products(q="classmate")["items"]] == ["Notebook"]

    def test_pagination(self, make_product):
        for i in range(5):
            make_product(name=f"Item {i}")
        page = stock_service.list_products(page=2, per_page=2)
        assert page["count"] == 2
        assert page["pagination"]["total"] == 5
        assert page["pagination"]["has_next"] is True

    def test_duplicate_category_conflict(self, db_session):
        stock_service.create_category("Stationery")
        with pytest.raises(ConflictError):
            stock_service.create_category("stationery")


class TestReconcile:
    def test_no_drift_after_restock(self, product, inventory_user):
        stock_service.replenish(product.id, 4, inventory_user.id)
        report = stock_service.reconcile(product.id)
        assert report["expected_stock"] == 9
        assert report["drift"] == 0

    def test_drift_detected_when_counter_tampered(self, product):
        db.session.query(Product).filter_by(id=product.id).update({"current_stock": 1})
        db.session.commit()
        assert stock_service.reconcile(product.id)["drift"] == -4
