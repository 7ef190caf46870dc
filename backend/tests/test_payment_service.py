# Overview: Pytest coverage for sale payments and customer FIFO allocation.

from datetime import datetime

import pytest

from stockledger.extensions import db
from stockledger.models import Customer, Sale, Transaction
from stockledger.services import payment_service, sales_service
from stockledger.services.payment_service import PaymentError, derive_payment_status
from stockledger.validation import ValidationError, NotFoundError


def _credit_sale(store_id, product_id, quantity, *, paid=0, phone="0300-9999999", sale_date=None):
    payload = {
        "items": [{"product_id": product_id, "quantity": quantity}],
        "payment_method": "Credit",
        "paid_amount_cents": paid,
        "customer_name": "Imran",
        "customer_phone": phone,
    }
    if sale_date is not None:
        payload["sale_date"] = sale_date
    return sales_service.create_sale(store_id=store_id, payload=payload)


def _customer_balance(phone="0300-9999999"):
    db.session.expire_all()
    return db.session.query(Customer).filter_by(phone=phone).one().balance_cents


class TestDerivePaymentStatus:
    @pytest.mark.parametrize("paid,total,expected", [
        (0, 500, "PENDING"),
        (-1, 500, "PENDING"),
        (1, 500, "PARTIAL"),
        (499, 500, "PARTIAL"),
        (500, 500, "PAID"),
        (600, 500, "PAID"),
        (0, 0, "PENDING"),
    ])
    def test_status_is_function_of_paid_and_total(self, paid, total, expected):
        assert derive_payment_status(paid, total) == expected


class TestRecordSalePayment:
    def test_settles_credit_sale(self, store, make_product, cash_account, balance):
        p = make_product(selling_price_cents=100)
        sale = _credit_sale(store.id, p["id"], 5, paid=200)

        result = payment_service.record_sale_payment(store_id=store.id, sale_id=sale["id"], payload={
            "amount_cents": 300, "method": "Cash",
        })

        assert result["payment_status"] == "PAID"
        assert result["applied_amount_cents"] == 300
        assert len(result["payments"]) == 2
        assert _customer_balance() == 0
        assert balance(cash_account.id) == 500

    def test_amount_clamped_to_remainder(self, store, make_product):
        p = make_product(selling_price_cents=100)
        sale = _credit_sale(store.id, p["id"], 2)

        result = payment_service.record_sale_payment(store_id=store.id, sale_id=sale["id"], payload={
            "amount_cents": 1000,
        })

        assert result["applied_amount_cents"] == 200
        assert result["paid_amount_cents"] == 200
        assert _customer_balance() == 0

    def test_partial_payment(self, store, make_product):
        p = make_product(selling_price_cents=100)
        sale = _credit_sale(store.id, p["id"], 3)
        result = payment_service.record_sale_payment(store_id=store.id, sale_id=sale["id"], payload={
            "amount_cents": 100,
        })
        assert result["payment_status"] == "PARTIAL"
        assert _customer_balance() == 200

    def test_bank_transfer_posts_to_bank(self, store, make_product, bank_account, balance):
        p = make_product(selling_price_cents=100)
        sale = _credit_sale(store.id, p["id"], 1)
        payment_service.record_sale_payment(store_id=store.id, sale_id=sale["id"], payload={
            "amount_cents": 100, "method": "Bank Transfer",
        })
        assert balance(bank_account.id) == 100
        tx = db.session.query(Transaction).filter_by(reference_type="PAYMENT").one()
        assert tx.reference_id == sale["id"]

    def test_settled_sale_rejected(self, store, make_product):
        p = make_product()
        sale = sales_service.create_sale(store_id=store.id, payload={
            "items": [{"product_id": p["id"], "quantity": 1}], "paid_amount_cents": 100,
        })
        with pytest.raises(PaymentError):
            payment_service.record_sale_payment(store_id=store.id, sale_id=sale["id"], payload={"amount_cents": 50})

    def test_non_positive_amount_rejected(self, store, make_product):
        p = make_product()
        sale = _credit_sale(store.id, p["id"], 1)
        with pytest.raises(ValidationError):
            payment_service.record_sale_payment(store_id=store.id, sale_id=sale["id"], payload={"amount_cents": 0})

    def test_missing_sale(self, store):
        with pytest.raises(NotFoundError):
            payment_service.record_sale_payment(store_id=store.id, sale_id=404, payload={"amount_cents": 10})


class TestCustomerPayment:
    def test_fifo_allocation(self, store, make_product, cash_account, balance):
        p = make_product(selling_price_cents=50, initial_quantity=10)
        s1 = _credit_sale(store.id, p["id"], 2, sale_date="2026-01-05T10:00:00Z")
        s2 = _credit_sale(store.id, p["id"], 1, sale_date="2026-01-06T10:00:00Z")
        customer_id = s1["customer_id"]
        assert _customer_balance() == 150

        result = payment_service.record_customer_payment(store_id=store.id, customer_id=customer_id, payload={
            "amount_cents": 120,
        })

        assert result["applied_amount_cents"] == 120
        assert result["unapplied_amount_cents"] == 0
        assert [(a["sale_id"], a["applied_cents"]) for a in result["allocations"]] == [
            (s1["id"], 100), (s2["id"], 20),
        ]
        db.session.expire_all()
        first = db.session.get(Sale, s1["id"])
        second = db.session.get(Sale, s2["id"])
        assert first.payment_status == "PAID"
        assert second.payment_status == "PARTIAL"
        assert second.remaining_cents == 30
        assert _customer_balance() == 30
        assert balance(cash_account.id) == 120

    def test_oldest_sale_paid_first_regardless_of_creation_order(self, store, make_product):
        p = make_product(selling_price_cents=50, initial_quantity=10)
        newer = _credit_sale(store.id, p["id"], 1, sale_date="2026-02-10T09:00:00Z")
        older = _credit_sale(store.id, p["id"], 1, sale_date="2026-02-01T09:00:00Z")

        result = payment_service.record_customer_payment(
            store_id=store.id, customer_id=newer["customer_id"], payload={"amount_cents": 50},
        )

        assert [a["sale_id"] for a in result["allocations"]] == [older["id"]]

    def test_overpayment_partially_applied(self, store, make_product):
        p = make_product(selling_price_cents=50)
        sale = _credit_sale(store.id, p["id"], 1)
        result = payment_service.record_customer_payment(
            store_id=store.id, customer_id=sale["customer_id"], payload={"amount_cents": 80},
        )
        assert result["applied_amount_cents"] == 50
        assert result["unapplied_amount_cents"] == 30
        assert _customer_balance() == 0

    def test_customer_without_balance_rejected(self, store, make_product):
        p = make_product(selling_price_cents=50)
        sale = _credit_sale(store.id, p["id"], 1, paid=50)
        with pytest.raises(PaymentError):
            payment_service.record_customer_payment(
                store_id=store.id, customer_id=sale["customer_id"], payload={"amount_cents": 10},
            )
