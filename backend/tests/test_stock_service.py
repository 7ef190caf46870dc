# Overview: Pytest coverage for the stock ledger.

import pytest

from stockledger.extensions import db
from stockledger.models import Product, RawMaterialProduct
from stockledger.services import stock_service, products_service
from stockledger.validation import ValidationError, NotFoundError


def _reload(product_id):
    db.session.expire_all()
    return db.session.get(Product, product_id)


class TestExtendedCents:
    def test_whole_quantities(self):
        assert stock_service.extended_cents(3, 150) == 450

    def test_fractional_quantity_rounds_half_up(self):
        # 2.5 m at 101 cents = 252.5 cents
        assert stock_service.extended_cents(2.5, 101) == 253

    def test_zero_quantity(self):
        assert stock_service.extended_cents(0, 999) == 0


class TestAdjustStock:
    def test_simple_product_uses_stock_level(self, make_product):
        p = make_product(initial_quantity=10)
        product = _reload(p["id"])

        stock_service.adjust_stock(product, -3)
        db.session.commit()

        assert _reload(p["id"]).stock_level == 7

    def test_raw_material_moves_total_meters_and_mirror(self, store):
        p = products_service.create_product(store_id=store.id, payload={
            "product_kind": "RAW_MATERIAL",
            "sku": "lawn-01",
            "name": "Lawn Fabric",
            "total_meters": 40,
            "meters_per_unit": 2.5,
            "buying_price_cents": 300,
            "selling_price_cents": 450,
        })
        product = _reload(p["id"])
        assert isinstance(product, RawMaterialProduct)

        stock_service.adjust_stock(product, -7.5)
        db.session.commit()

        product = _reload(p["id"])
        assert product.total_meters == 32.5
        assert product.stock_level == 32.5
        assert product.calculated_units == 13

    def test_zero_delta_is_noop(self, make_product):
        p = make_product(initial_quantity=4)
        product = _reload(p["id"])
        stock_service.adjust_stock(product, 0)
        db.session.commit()
        assert _reload(p["id"]).stock_level == 4


class TestValidateAvailability:
    def test_returns_loaded_products(self, store, make_product):
        p = make_product(initial_quantity=5)
        products = stock_service.validate_availability(store.id, {p["id"]: 5})
        assert products[p["id"]].id == p["id"]

    def test_insufficient_stock_names_product(self, store, make_product):
        p = make_product(name="Cotton Shirt", initial_quantity=2)
        with pytest.raises(ValidationError) as exc:
            stock_service.validate_availability(store.id, {p["id"]: 3})
        assert "Insufficient stock" in str(exc.value)
        assert "Cotton Shirt" in str(exc.value)

    def test_missing_product(self, store):
        with pytest.raises(NotFoundError):
            stock_service.validate_availability(store.id, {999: 1})

    def test_product_from_other_store_is_missing(self, other_store, make_product):
        p = make_product()
        with pytest.raises(NotFoundError):
            stock_service.validate_availability(other_store.id, {p["id"]: 1})

    def test_archived_product_cannot_be_sold(self, store, make_product):
        p = make_product()
        product = _reload(p["id"])
        product.is_active = False
        db.session.commit()

        with pytest.raises(ValidationError) as exc:
            stock_service.validate_availability(store.id, {p["id"]: 1})
        assert "archived" in str(exc.value)


class TestStockHistory:
    def test_newest_first_with_product_name(self, store, make_product, supplier):
        p = make_product(name="Kurta", initial_quantity=3)
        products_service.restock_product(
            store_id=store.id, product_id=p["id"], payload={"quantity": 2, "supplier_id": supplier.id}
        )

        history = stock_service.get_stock_history(store.id, product_id=p["id"])

        assert [row["entry_type"] for row in history] == ["RESTOCK", "INITIAL_STOCK"]
        assert history[0]["product_name"] == "Kurta"
        assert history[0]["supplier_name"] == "Faisal Textiles"

    def test_limit(self, store, make_product):
        for _ in range(3):
            make_product()
        assert len(stock_service.get_stock_history(store.id, limit=2)) == 2

    def test_filter_by_entry_type(self, store, make_product):
        p = make_product(initial_quantity=2)
        products_service.restock_product(store_id=store.id, product_id=p["id"], payload={"quantity": 10})
        products_service.update_product(store_id=store.id, product_id=p["id"], payload={"stock_level": 4})

        history = stock_service.get_stock_history(store.id, entry_type="adjustment")

        assert [(row["entry_type"], row["quantity"]) for row in history] == [("ADJUSTMENT", -6)]

    def test_unknown_entry_type(self, store):
        with pytest.raises(ValidationError):
            stock_service.get_stock_history(store.id, entry_type="RETURN")
