# Overview: Pytest coverage for purchase orders and their stock effects.

import pytest

from stockledger.extensions import db
from stockledger.models import Product, Supplier, PurchaseOrder, PurchaseOrderLine
from stockledger.services import purchase_order_service
from stockledger.services.purchase_order_service import PurchaseOrderError
from stockledger.validation import ConflictError, NotFoundError, ValidationError


def _product(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id)


def _order(store_id, supplier_id, lines, **extra):
    payload = {"supplier_id": supplier_id, "lines": lines}
    payload.update(extra)
    return purchase_order_service.create_purchase_order(store_id=store_id, payload=payload)


class TestCreatePurchaseOrder:
    def test_adds_stock_and_overwrites_prices(self, store, supplier, make_product):
        p = make_product(buying_price_cents=50, selling_price_cents=100, initial_quantity=10)

        po = _order(store.id, supplier.id, [
            {"product_id": p["id"], "quantity": 5, "unit_cost_cents": 60, "selling_price_cents": 120},
        ])

        product = _product(p["id"])
        assert product.stock_level == 15
        assert product.buying_price_cents == 60
        assert product.selling_price_cents == 120
        assert po["po_number"] == "PO-0001"
        assert po["total_amount_cents"] == 300
        assert po["status"] == "RECEIVED"
        assert po["supplier_name"] == "Faisal Textiles"

    def test_selling_price_kept_when_not_given(self, store, supplier, make_product):
        p = make_product(selling_price_cents=100)
        _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 70}])
        assert _product(p["id"]).selling_price_cents == 100

    def test_supplier_balance_untouched(self, store, supplier, make_product):
        p = make_product()
        _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 4, "unit_cost_cents": 100}])
        db.session.expire_all()
        assert db.session.get(Supplier, supplier.id).current_balance_cents == 0

    def test_raw_material_meters(self, store, supplier, make_product):
        p = make_product(product_kind="RAW_MATERIAL", total_meters=20, initial_quantity=None)
        _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 12.5, "unit_cost_cents": 300}])
        product = _product(p["id"])
        assert product.total_meters == 32.5
        assert product.stock_level == 32.5

    def test_explicit_number_must_be_unique(self, store, supplier, make_product):
        p = make_product()
        line = [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 10}]
        _order(store.id, supplier.id, line, po_number="PO-MANUAL")
        with pytest.raises(ConflictError):
            _order(store.id, supplier.id, line, po_number="PO-MANUAL")

    def test_requires_lines(self, store, supplier):
        with pytest.raises(PurchaseOrderError):
            _order(store.id, supplier.id, [])

    def test_requires_supplier(self, store, make_product):
        p = make_product()
        with pytest.raises(PurchaseOrderError):
            purchase_order_service.create_purchase_order(store_id=store.id, payload={
                "lines": [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 10}],
            })

    def test_unknown_product_writes_nothing(self, store, supplier, make_product):
        p = make_product(initial_quantity=3)
        with pytest.raises(NotFoundError):
            _order(store.id, supplier.id, [
                {"product_id": p["id"], "quantity": 1, "unit_cost_cents": 10},
                {"product_id": 999, "quantity": 1, "unit_cost_cents": 10},
            ])
        assert _product(p["id"]).stock_level == 3
        assert db.session.query(PurchaseOrder).count() == 0

    @pytest.mark.parametrize("quantity", ["nan", "Infinity", float("inf")])
    def test_non_finite_quantity_writes_nothing(self, store, supplier, make_product, quantity):
        p = make_product(initial_quantity=3)
        with pytest.raises(ValidationError):
            _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": quantity, "unit_cost_cents": 10}])
        assert _product(p["id"]).stock_level == 3
        assert db.session.query(PurchaseOrder).count() == 0


class TestUpdatePurchaseOrder:
    def test_lines_replaced_and_stock_rebalanced(self, store, supplier, make_product):
        a = make_product(initial_quantity=10)
        b = make_product(initial_quantity=10)
        po = _order(store.id, supplier.id, [{"product_id": a["id"], "quantity": 5, "unit_cost_cents": 40}])
        assert _product(a["id"]).stock_level == 15

        updated = purchase_order_service.update_purchase_order(store_id=store.id, po_id=po["id"], payload={
            "lines": [
                {"product_id": a["id"], "quantity": 2, "unit_cost_cents": 45},
                {"product_id": b["id"], "quantity": 3, "unit_cost_cents": 20},
            ],
        })

        assert _product(a["id"]).stock_level == 12
        assert _product(b["id"]).stock_level == 13
        assert updated["total_amount_cents"] == 2 * 45 + 3 * 20
        assert len(updated["lines"]) == 2
        assert db.session.query(PurchaseOrderLine).count() == 2

    def test_header_only_update_leaves_stock(self, store, supplier, second_supplier, make_product):
        p = make_product(initial_quantity=10)
        po = _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 5, "unit_cost_cents": 40}])

        updated = purchase_order_service.update_purchase_order(store_id=store.id, po_id=po["id"], payload={
            "supplier_id": second_supplier.id, "notes": "Delivered late", "status": "ordered",
        })

        assert updated["supplier_id"] == second_supplier.id
        assert updated["status"] == "ORDERED"
        assert _product(p["id"]).stock_level == 15

    def test_missing_order(self, store):
        with pytest.raises(NotFoundError):
            purchase_order_service.update_purchase_order(store_id=store.id, po_id=404, payload={"notes": "x"})


class TestDeletePurchaseOrder:
    def test_stock_kept_by_default(self, store, supplier, make_product):
        p = make_product(initial_quantity=10)
        po = _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 5, "unit_cost_cents": 40}])

        result = purchase_order_service.delete_purchase_order(store_id=store.id, po_id=po["id"])

        assert result == {"id": po["id"], "po_number": "PO-0001", "stock_reverted": False}
        assert _product(p["id"]).stock_level == 15
        assert db.session.query(PurchaseOrder).count() == 0

    def test_stock_reverted_when_enabled(self, app, monkeypatch, store, supplier, make_product):
        monkeypatch.setitem(app.config, "PURCHASE_ORDER_DELETE_REVERTS_STOCK", True)
        p = make_product(initial_quantity=10)
        po = _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 5, "unit_cost_cents": 40}])

        result = purchase_order_service.delete_purchase_order(store_id=store.id, po_id=po["id"])

        assert result["stock_reverted"] is True
        assert _product(p["id"]).stock_level == 10


class TestLastSupply:
    def test_newest_order_wins(self, store, supplier, second_supplier, make_product):
        p = make_product()
        _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 40}])
        _order(store.id, second_supplier.id, [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 55}])

        last = purchase_order_service.get_last_supply(store_id=store.id, product_id=p["id"])

        assert last["supplier"]["name"] == "Lahore Fabrics"
        assert last["last_cost_cents"] == 55
        assert last["po_number"] == "PO-0002"

    def test_never_ordered(self, store, make_product):
        p = make_product()
        assert purchase_order_service.get_last_supply(store_id=store.id, product_id=p["id"]) is None

    def test_listing_filters_by_supplier(self, store, supplier, second_supplier, make_product):
        p = make_product()
        _order(store.id, supplier.id, [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 40}])
        _order(store.id, second_supplier.id, [{"product_id": p["id"], "quantity": 1, "unit_cost_cents": 55}])

        result = purchase_order_service.list_purchase_orders(store_id=store.id, supplier_id=supplier.id)

        assert result["total"] == 1
        assert result["data"][0]["po_number"] == "PO-0001"
