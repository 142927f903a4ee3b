"""
Persistence port used by the services.

Thin wrapper over a SQLAlchemy session exposing get/create/update/query and
a transaction scope. ``get(..., lock=True)`` takes a row lock
(SELECT ... FOR UPDATE) and refreshes the instance so read-modify-write on
ledgers always starts from the committed row.
"""
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional, Type, TypeVar

from sqlalchemy.orm import Session

from ..errors import NotFound

T = TypeVar("T")

_LABELS = {
    "PaymentMilestone": "Payment milestone",
    "MaterialOrder": "Material",
    "RawMaterialOrder": "Raw material order",
    "WorkerLog": "Worker log",
    "FollowUp": "Follow-up",
}


def entity_label(model: type) -> str:
    return _LABELS.get(model.__name__, model.__name__)


class Store:
    def __init__(self, db: Session):
        self.db = db

    def get(self, model: Type[T], entity_id: Any, *, lock: bool = False) -> T:
        q = self.db.query(model).filter(model.id == entity_id)
        if lock:
            q = q.with_for_update().populate_existing()
        obj = q.first()
        if obj is None:
            raise NotFound(entity_label(model), entity_id)
        return obj

    def find(self, model: Type[T], entity_id: Any) -> Optional[T]:
        if entity_id is None:
            return None
        return self.db.query(model).filter(model.id == entity_id).first()

    def create(self, model: Type[T], **fields: Any) -> T:
        obj = model(**fields)
        self.db.add(obj)
        self.db.flush()
        return obj

    def update(self, obj: T, **fields: Any) -> T:
        for key, value in fields.items():
            setattr(obj, key, value)
        self.db.flush()
        return obj

    def delete(self, obj: Any) -> None:
        self.db.delete(obj)
        self.db.flush()

    def query(self, model: Type[T], *criteria: Any, order_by: Any = None) -> List[T]:
        q = self.db.query(model)
        if criteria:
            q = q.filter(*criteria)
        if order_by is not None:
            q = q.order_by(order_by)
        return q.all()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Commit on success, roll back and re-raise on any error."""
        try:
            yield self.db
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
