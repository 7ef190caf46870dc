# Overview: Pytest coverage for the product lifecycle and supplier balance reconciliation.

"""
Product Service Tests

Covers:
- creation of every product kind with its INITIAL_STOCK entry
- supplier credit on creation, restock and unlocked edits
- reconciliation idempotence (balance follows the final quantity x price)
- corrections deeper than the initial entry (ADJUSTMENT entries)
- the sales lock on commercial fields
- delete vs archive
"""

import pytest

from stockledger.extensions import db
from stockledger.models import Product, StockEntry, Supplier
from stockledger.services import products_service, sales_service
from stockledger.services.products_service import ProductError
from stockledger.validation import ValidationError, ConflictError, NotFoundError


def _supplier_balance(supplier_id):
    db.session.expire_all()
    return db.session.get(Supplier, supplier_id).current_balance_cents


def _product(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id)


def _sell(store_id, product_id, quantity=1):
    return sales_service.create_sale(store_id=store_id, payload={
        "items": [{"product_id": product_id, "quantity": quantity}],
        "payment_method": "Cash",
        "paid_amount_cents": 10_000,
    })


class TestCreateProduct:
    def test_simple_product_with_supplier(self, store, supplier):
        p = products_service.create_product(store_id=store.id, payload={
            "sku": "shirt-1",
            "name": "Shirt",
            "buying_price_cents": 500,
            "selling_price_cents": 800,
            "initial_quantity": 10,
            "supplier_id": supplier.id,
            "invoice_number": "INV-77",
        })

        assert p["sku"] == "SHIRT-1"
        assert p["stock_level"] == 10
        assert p["locked"] is False
        assert p["base_unit"] == "pcs"
        assert _supplier_balance(supplier.id) == 5000

        entry = db.session.query(StockEntry).filter_by(product_id=p["id"]).one()
        assert entry.is_initial is True
        assert entry.entry_type == "INITIAL_STOCK"
        assert entry.total_cost_cents == 5000
        assert entry.invoice_number == "INV-77"

        s = db.session.get(Supplier, supplier.id)
        assert [prod.id for prod in s.products] == [p["id"]]

    def test_initial_entry_written_without_supplier_or_quantity(self, store):
        p = products_service.create_product(store_id=store.id, payload={"sku": "x1", "name": "Empty"})
        entry = db.session.query(StockEntry).filter_by(product_id=p["id"]).one()
        assert entry.quantity == 0
        assert entry.supplier_id is None

    def test_raw_material(self, store, supplier):
        p = products_service.create_product(store_id=store.id, payload={
            "product_kind": "RAW_MATERIAL",
            "sku": "lawn",
            "name": "Lawn",
            "total_meters": 25.5,
            "meters_per_unit": 5,
            "buying_price_cents": 200,
            "supplier_id": supplier.id,
        })
        assert p["product_kind"] == "RAW_MATERIAL"
        assert p["total_meters"] == 25.5
        assert p["stock_level"] == 25.5
        assert p["calculated_units"] == 5
        assert p["base_unit"] == "meter"
        assert _supplier_balance(supplier.id) == 5100

    def test_combo_set_components(self, store):
        p = products_service.create_product(store_id=store.id, payload={
            "product_kind": "COMBO_SET",
            "sku": "suit-3pc",
            "name": "Three Piece Suit",
            "initial_quantity": 4,
            "can_sell_partial_set": True,
            "components": [
                {"name": "Qameez", "meters": 3},
                {"name": "Shalwar", "meters": 2.5},
                {"name": "Dupatta", "meters": 2.5},
            ],
        })
        assert p["base_unit"] == "set"
        assert [c["name"] for c in p["components"]] == ["Qameez", "Shalwar", "Dupatta"]
        assert p["total_combo_meters"] == 8
        assert p["can_sell_partial_set"] is True

    def test_unknown_component_name_rejected(self, store):
        with pytest.raises(ValidationError):
            products_service.create_product(store_id=store.id, payload={
                "product_kind": "COMBO_SET",
                "sku": "bad",
                "name": "Bad Set",
                "components": [{"name": "Sleeve", "meters": 1}],
            })

    def test_duplicate_sku_conflicts_case_insensitively(self, store, make_product):
        make_product(sku="ABC")
        with pytest.raises(ConflictError):
            make_product(sku="abc")

    def test_duplicate_barcode_conflicts(self, store, make_product):
        make_product(barcode="8901234")
        with pytest.raises(ConflictError):
            make_product(barcode="8901234")

    def test_same_sku_allowed_in_other_store(self, store, other_store, make_product):
        make_product(sku="SHARED")
        p = products_service.create_product(store_id=other_store.id, payload={"sku": "shared", "name": "Other"})
        assert p["store_id"] == other_store.id

    def test_unknown_supplier_leaves_nothing_behind(self, store):
        with pytest.raises(NotFoundError):
            products_service.create_product(store_id=store.id, payload={
                "sku": "orphan", "name": "Orphan", "supplier_id": 999,
            })
        assert db.session.query(Product).count() == 0

    def test_missing_name(self, store):
        with pytest.raises(ValidationError):
            products_service.create_product(store_id=store.id, payload={"sku": "nameless"})


class TestReconciliation:
    def test_repeated_edits_follow_final_quantity_and_price(self, store, supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=10, supplier_id=supplier.id)
        assert _supplier_balance(supplier.id) == 5000

        products_service.update_product(store_id=store.id, product_id=p["id"], payload={"buying_price_cents": 600})
        products_service.update_product(store_id=store.id, product_id=p["id"], payload={"stock_level": 12})
        products_service.update_product(
            store_id=store.id, product_id=p["id"], payload={"stock_level": 8, "buying_price_cents": 550}
        )

        # initial + (final qty x final price - original qty x original price)
        assert _supplier_balance(supplier.id) == 5000 + (8 * 550 - 10 * 500)
        assert _product(p["id"]).stock_level == 8

    def test_resubmitting_same_values_is_idempotent(self, store, supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=10, supplier_id=supplier.id)
        payload = {"name": "Renamed", "stock_level": 10, "buying_price_cents": 500, "supplier_id": supplier.id}

        products_service.update_product(store_id=store.id, product_id=p["id"], payload=payload)
        products_service.update_product(store_id=store.id, product_id=p["id"], payload=payload)

        assert _supplier_balance(supplier.id) == 5000
        assert _product(p["id"]).name == "Renamed"

    def test_restocked_quantity_is_not_recredited(self, store, supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=10, supplier_id=supplier.id)
        products_service.restock_product(store_id=store.id, product_id=p["id"], payload={
            "quantity": 5, "unit_cost_cents": 500, "supplier_id": supplier.id,
        })
        assert _supplier_balance(supplier.id) == 7500
        assert _product(p["id"]).stock_level == 15

        # Correct the count down by 2: only the initial entry changes
        products_service.update_product(store_id=store.id, product_id=p["id"], payload={"stock_level": 13})

        assert _supplier_balance(supplier.id) == 7500 - 2 * 500
        entry = products_service.get_initial_stock_entry(store_id=store.id, product_id=p["id"])
        assert entry["quantity"] == 8
        assert entry["supplier"]["id"] == supplier.id

    def test_supplier_change_moves_balance(self, store, supplier, second_supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=10, supplier_id=supplier.id)

        products_service.update_product(
            store_id=store.id, product_id=p["id"], payload={"supplier_id": second_supplier.id}
        )

        assert _supplier_balance(supplier.id) == 0
        assert _supplier_balance(second_supplier.id) == 5000
        old = db.session.get(Supplier, supplier.id)
        new = db.session.get(Supplier, second_supplier.id)
        assert old.products == []
        assert [prod.id for prod in new.products] == [p["id"]]

    def test_supplier_removed(self, store, supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=10, supplier_id=supplier.id)
        products_service.update_product(store_id=store.id, product_id=p["id"], payload={"supplier_id": None})
        assert _supplier_balance(supplier.id) == 0

    def test_correction_below_initial_entry_books_adjustment(self, store, supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=2, supplier_id=supplier.id)
        products_service.restock_product(store_id=store.id, product_id=p["id"], payload={"quantity": 10})

        result = products_service.update_product(
            store_id=store.id, product_id=p["id"], payload={"stock_level": 5}
        )

        assert result["stock_level"] == 5
        assert _product(p["id"]).stock_level == 5
        entry = products_service.get_initial_stock_entry(store_id=store.id, product_id=p["id"])
        assert entry["quantity"] == 0
        assert entry["total_cost_cents"] == 0

        adjustments = db.session.query(StockEntry).filter_by(product_id=p["id"], entry_type="ADJUSTMENT").all()
        assert len(adjustments) == 1
        assert adjustments[0].quantity == -5
        assert adjustments[0].supplier_id is None

        # 2 initial + 10 restocked - 2 from the initial entry - 5 adjusted
        entries = db.session.query(StockEntry).filter_by(product_id=p["id"]).all()
        assert sum(e.quantity for e in entries) == 5
        # the supplier was only ever owed the initial entry
        assert _supplier_balance(supplier.id) == 0

    def test_kind_cannot_change(self, store, make_product):
        p = make_product()
        with pytest.raises(ProductError):
            products_service.update_product(
                store_id=store.id, product_id=p["id"], payload={"product_kind": "RAW_MATERIAL"}
            )

    def test_raw_material_meters_edit(self, store, supplier):
        p = products_service.create_product(store_id=store.id, payload={
            "product_kind": "RAW_MATERIAL", "sku": "chiffon", "name": "Chiffon",
            "total_meters": 10, "buying_price_cents": 100, "supplier_id": supplier.id,
        })
        updated = products_service.update_product(
            store_id=store.id, product_id=p["id"], payload={"total_meters": 12.5}
        )
        assert updated["total_meters"] == 12.5
        assert updated["stock_level"] == 12.5
        assert _supplier_balance(supplier.id) == 1250


class TestLock:
    def test_commercial_fields_preserved_after_sale(self, store, supplier, second_supplier, make_product):
        p = make_product(buying_price_cents=50, selling_price_cents=100, initial_quantity=10, supplier_id=supplier.id)
        _sell(store.id, p["id"], quantity=2)

        result = products_service.update_product(store_id=store.id, product_id=p["id"], payload={
            "name": "New Name",
            "buying_price_cents": 70,
            "selling_price_cents": 150,
            "stock_level": 50,
            "supplier_id": second_supplier.id,
        })

        assert result["locked"] is True
        assert result["name"] == "New Name"
        assert result["buying_price_cents"] == 50
        assert result["selling_price_cents"] == 100
        assert result["stock_level"] == 8
        assert _supplier_balance(supplier.id) == 500
        assert _supplier_balance(second_supplier.id) == 0

    def test_lock_is_reported(self, store, make_product):
        p = make_product()
        assert products_service.get_product(store_id=store.id, product_id=p["id"])["locked"] is False
        assert products_service.check_sales(store_id=store.id, product_id=p["id"]) == {
            "has_sales": False, "sales_count": 0,
        }

        _sell(store.id, p["id"])

        assert products_service.get_product(store_id=store.id, product_id=p["id"])["locked"] is True
        assert products_service.check_sales(store_id=store.id, product_id=p["id"]) == {
            "has_sales": True, "sales_count": 1,
        }

    def test_restock_allowed_on_locked_product(self, store, make_product):
        p = make_product(initial_quantity=5)
        _sell(store.id, p["id"])
        result = products_service.restock_product(
            store_id=store.id, product_id=p["id"], payload={"quantity": 3, "unit_cost_cents": 65}
        )
        assert result["stock_level"] == 7
        assert result["buying_price_cents"] == 65


class TestRestock:
    @pytest.mark.parametrize("quantity", ["nan", "inf", float("nan")])
    def test_non_finite_quantity_rejected(self, store, supplier, make_product, quantity):
        p = make_product(initial_quantity=5)
        with pytest.raises(ValidationError):
            products_service.restock_product(store_id=store.id, product_id=p["id"], payload={
                "quantity": quantity, "unit_cost_cents": 50, "supplier_id": supplier.id,
            })
        assert _product(p["id"]).stock_level == 5
        assert _supplier_balance(supplier.id) == 0
        assert db.session.query(StockEntry).filter_by(entry_type="RESTOCK").count() == 0


class TestDeleteProduct:
    def test_unsold_product_deleted_and_credit_reversed(self, store, supplier, make_product):
        p = make_product(buying_price_cents=500, initial_quantity=10, supplier_id=supplier.id)

        result = products_service.delete_product(store_id=store.id, product_id=p["id"])

        assert result == {"id": p["id"], "archived": False, "deleted": True}
        assert _supplier_balance(supplier.id) == 0
        assert db.session.get(Product, p["id"]) is None
        assert db.session.query(StockEntry).count() == 0
        assert db.session.get(Supplier, supplier.id).products == []

    def test_restock_credits_reversed_on_delete(self, store, supplier, second_supplier, make_product):
        p = make_product(buying_price_cents=50, initial_quantity=10, supplier_id=supplier.id)
        products_service.restock_product(store_id=store.id, product_id=p["id"], payload={
            "quantity": 5, "unit_cost_cents": 50, "supplier_id": supplier.id,
        })
        products_service.restock_product(store_id=store.id, product_id=p["id"], payload={
            "quantity": 2, "unit_cost_cents": 80, "supplier_id": second_supplier.id,
        })
        assert _supplier_balance(supplier.id) == 750
        assert _supplier_balance(second_supplier.id) == 160

        result = products_service.delete_product(store_id=store.id, product_id=p["id"])

        assert result["deleted"] is True
        assert _supplier_balance(supplier.id) == 0
        assert _supplier_balance(second_supplier.id) == 0
        assert db.session.query(StockEntry).count() == 0
        assert db.session.get(Supplier, second_supplier.id).products == []

    def test_sold_product_archived(self, store, make_product):
        p = make_product()
        _sell(store.id, p["id"])

        result = products_service.delete_product(store_id=store.id, product_id=p["id"])

        assert result["archived"] is True
        assert _product(p["id"]).is_active is False
        listed = products_service.list_products(store_id=store.id)
        assert listed["total"] == 0
        listed = products_service.list_products(store_id=store.id, include_inactive=True)
        assert listed["total"] == 1

    def test_missing_product(self, store):
        with pytest.raises(NotFoundError):
            products_service.delete_product(store_id=store.id, product_id=42)


class TestLookups:
    def test_by_sku_and_barcode(self, store, make_product):
        p = make_product(sku="LKP-1", barcode="111222")
        assert products_service.get_product_by_sku(store_id=store.id, sku="lkp-1")["id"] == p["id"]
        assert products_service.get_product_by_barcode(store_id=store.id, barcode="111222")["id"] == p["id"]
        assert products_service.get_product_by_barcode(store_id=store.id, barcode="000") is None

    def test_check_barcode(self, store, make_product):
        p = make_product(name="Scarf", barcode="555")
        assert products_service.check_barcode(store_id=store.id, barcode="555") == {
            "exists": True, "product_name": "Scarf",
        }
        assert products_service.check_barcode(store_id=store.id, barcode="555", exclude_id=p["id"]) == {
            "exists": False,
        }
        assert products_service.check_barcode(store_id=store.id, barcode="  ") == {"exists": False}

    def test_list_search_and_low_stock(self, store, make_product):
        make_product(name="Blue Kurta", initial_quantity=2)
        make_product(name="Red Kurta", initial_quantity=20)
        make_product(name="Shawl", initial_quantity=20)

        kurtas = products_service.list_products(store_id=store.id, search="kurta")
        assert kurtas["total"] == 2

        low = products_service.list_products(store_id=store.id, low_stock=True)
        assert [row["name"] for row in low["data"]] == ["Blue Kurta"]
        assert low["data"][0]["is_low_stock"] is True

    def test_pagination(self, store, make_product):
        for _ in range(5):
            make_product()
        page = products_service.list_products(store_id=store.id, page=2, page_size=2)
        assert page["total"] == 5
        assert page["total_pages"] == 3
        assert len(page["data"]) == 2
