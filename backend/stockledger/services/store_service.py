from __future__ import annotations

from ..extensions import db
from ..models import Store
from .concurrency import run_with_retry
from ..validation import ValidationError, ConflictError, NotFoundError


class StoreError(ValidationError):
    """Raised when store operations fail."""
    pass


def require_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise NotFoundError("Store not found")
    if not store.is_active:
        raise StoreError("Store is inactive")
    return store


def create_store(name: str, code: str | None = None) -> Store:
    def _op():
        if not name or not name.strip():
            raise StoreError("Store name is required")
        if code and db.session.query(Store).filter_by(code=code).first():
            raise ConflictError(f"Store code {code} already exists")

        store = Store(name=name.strip(), code=code)
        db.session.add(store)
        db.session.commit()
        return store

    return run_with_retry(_op)


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.id.asc()).all()
