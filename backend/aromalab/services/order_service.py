# Overview: Service-layer operations for manufacturing orders, including the completion engine.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import ManufacturingOrder, Formula, RawMaterial, ORDER_STATUSES
from ..validation import ConflictError
from aromalab.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .identifier_service import next_order_number, format_material_code
from . import activity_service
"""
Manufacturing Order Invariants (authoritative)

State machine:
- Orders are created 'pending'.
- Only 'pending' (or 'in-progress') orders can be completed or cancelled.
- 'completed' and 'cancelled' are terminal: any further transition raises
  OrderStateError. Completing twice never deducts stock twice.
- 'completed' is only reachable through complete_order().

Completion is one transaction:
- Every stock delta (ingredient.quantity * order.coefficient, summed per
  material) is computed before anything is written.
- Completion is refused if the formula is missing or an ingredient points
  at a material that no longer exists.
- Unless ALLOW_NEGATIVE_STOCK is set, completion is refused if any material
  would end below zero.
- Material deductions, the status change and the activity entry are
  committed together; any failure rolls all of them back.
"""


COMPLETABLE_STATUSES = ("pending", "in-progress")

# Float slack so 0.1 * 3 against a 0.3 kg stock is not a shortage
STOCK_EPSILON = 1e-9

ORDER_MUTABLE_FIELDS = ("formula_id", "coefficient")


class OrderStateError(ConflictError):
    """Transition not allowed from the order's current status."""


class OrderCompletionError(ConflictError):
    """Order cannot be completed (missing formula or ingredient material)."""


class InsufficientStockError(ConflictError):
    """Completing the order would drive one or more materials below zero."""

    def __init__(self, shortages: list["StockMovement"]):
        self.shortages = shortages
        labels = ", ".join(
            f"{s.material_code}: {s.required:.2f} kg requis, {s.stock_before:.2f} kg en stock"
            for s in shortages
        )
        super().__init__(f"Stock insuffisant ({labels})")


@dataclass
class StockMovement:
    """Planned deduction of one material for one order."""
    material_id: int | None
    material: RawMaterial | None
    required: float

    @property
    def material_code(self) -> str | None:
        return format_material_code(self.material.code) if self.material else None

    @property
    def stock_before(self) -> float:
        return self.material.stock if self.material else 0.0

    @property
    def stock_after(self) -> float:
        return self.stock_before - self.required

    @property
    def is_shortage(self) -> bool:
        return self.material is not None and self.stock_after < -STOCK_EPSILON

    def to_dict(self) -> dict:
        return {
            "material_id": self.material_id,
            "material_code": self.material_code,
            "designation": self.material.designation if self.material else None,
            "required": self.required,
            "stock_before": self.stock_before if self.material else None,
            "stock_after": self.stock_after if self.material else None,
            "is_shortage": self.is_shortage,
            "is_missing": self.material is None,
        }


def list_orders(search: str | None = None, status: str | None = None) -> list[ManufacturingOrder]:
    """
    Orders newest first.

    search matches the order number and the formula name (case-insensitive).
    """
    q = db.session.query(ManufacturingOrder)

    if status:
        q = q.filter(ManufacturingOrder.status == status)

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        q = q.outerjoin(Formula, Formula.id == ManufacturingOrder.formula_id).filter(
            db.or_(
                ManufacturingOrder.order_number.ilike(pattern),
                Formula.name.ilike(pattern),
            )
        )

    return q.order_by(ManufacturingOrder.created_at.desc(), ManufacturingOrder.id.desc()).all()


def get_order(order_id: int) -> ManufacturingOrder | None:
    return db.session.get(ManufacturingOrder, order_id)


def add_order(data: dict, actor=None) -> ManufacturingOrder:
    """
    Create a pending order with the next order number.

    The formula is not checked here; completion refuses a missing formula.
    """
    def _op():
        order = ManufacturingOrder(
            order_number=next_order_number(),
            formula_id=data["formula_id"],
            coefficient=data.get("coefficient", 1.0),
            status="pending",
            created_by=actor.user_id if actor is not None else data.get("created_by"),
            created_at=utcnow(),
        )
        db.session.add(order)
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_CREATE,
                entity="order",
                entity_id=order.id,
                details=f"Ordre de fabrication {order.order_number} créé",
                commit=False,
            )
        return order

    return run_in_transaction(_op)


def _lock_order(order_id: int) -> ManufacturingOrder | None:
    return lock_for_update(
        db.session.query(ManufacturingOrder).filter_by(id=order_id)
    ).first()


def _apply_cancel(order: ManufacturingOrder, actor) -> None:
    if order.status not in COMPLETABLE_STATUSES:
        raise OrderStateError(
            f"Order {order.order_number} is {order.status} and cannot be cancelled"
        )
    order.status = "cancelled"
    order.cancelled_at = utcnow()
    db.session.flush()

    if actor is not None:
        activity_service.log_activity(
            actor,
            action=activity_service.ACTION_CANCEL,
            entity="order",
            entity_id=order.id,
            details=f"Ordre de fabrication {order.order_number} annulé",
            commit=False,
        )


def update_order(order_id: int, patch: dict, actor=None) -> ManufacturingOrder | None:
    """
    Generic merge-patch of an order.

    - status 'cancelled' cancels the order (no stock effect)
    - status 'completed' is refused: use complete_order()
    - terminal orders cannot be modified
    Returns None when the order does not exist.
    """
    def _op():
        order = _lock_order(order_id)
        if order is None:
            return None

        if order.is_terminal:
            raise OrderStateError(
                f"Order {order.order_number} is {order.status} and cannot be modified"
            )

        new_status = patch.get("status")
        if new_status is not None and new_status not in ORDER_STATUSES:
            raise ValueError(f"status must be one of: {', '.join(ORDER_STATUSES)}")
        if new_status == "completed":
            raise OrderStateError("Orders are completed through the completion workflow only")

        for key in ORDER_MUTABLE_FIELDS:
            if key in patch:
                setattr(order, key, patch[key])

        if new_status == "cancelled":
            _apply_cancel(order, actor)
        elif new_status is not None:
            order.status = new_status
        db.session.flush()
        return order

    return run_in_transaction(_op)


def cancel_order(order_id: int, actor=None) -> ManufacturingOrder | None:
    """Cancel a pending order. Returns None when the order does not exist."""
    def _op():
        order = _lock_order(order_id)
        if order is None:
            return None
        _apply_cancel(order, actor)
        return order

    return run_in_transaction(_op)


def _plan(order: ManufacturingOrder, formula: Formula, *, lock: bool = False) -> list[StockMovement]:
    required: dict = {}
    for ing in formula.ingredients:
        required[ing.material_id] = required.get(ing.material_id, 0.0) + ing.quantity * order.coefficient

    ids = [mid for mid in required if mid is not None]
    materials = {}
    if ids:
        q = db.session.query(RawMaterial).filter(RawMaterial.id.in_(ids))
        if lock:
            q = lock_for_update(q)
        materials = {m.id: m for m in q.all()}

    return [
        StockMovement(material_id=mid, material=materials.get(mid), required=qty)
        for mid, qty in required.items()
    ]


def plan_consumption(order: ManufacturingOrder) -> list[StockMovement] | None:
    """
    Preview of the stock each ingredient would consume, without side effects.

    Returns None when the order's formula does not exist.
    """
    formula = db.session.get(Formula, order.formula_id)
    if formula is None:
        return None
    return _plan(order, formula)


def complete_order(order_id: int, actor=None) -> ManufacturingOrder | None:
    """
    Complete an order and deduct its ingredients from stock, atomically.

    Returns the completed order, or None when the order does not exist.

    Raises:
        OrderStateError: order is not pending / in-progress
        OrderCompletionError: formula or an ingredient material is missing
        InsufficientStockError: a material would go negative (unless allowed)
    """
    allow_negative = bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))

    def _op():
        order = _lock_order(order_id)
        if order is None:
            return None

        if order.status not in COMPLETABLE_STATUSES:
            raise OrderStateError(
                f"Order {order.order_number} is {order.status} and cannot be completed"
            )

        formula = db.session.get(Formula, order.formula_id)
        if formula is None:
            raise OrderCompletionError(
                f"Formula {order.formula_id} of order {order.order_number} not found"
            )

        plan = _plan(order, formula, lock=True)

        missing = [m.material_id for m in plan if m.material is None]
        if missing:
            raise OrderCompletionError(
                f"Unknown materials in formula: {', '.join(str(mid) for mid in missing)}"
            )

        if not allow_negative:
            shortages = [m for m in plan if m.is_shortage]
            if shortages:
                raise InsufficientStockError(shortages)

        now = utcnow()
        for movement in plan:
            stock_after = movement.stock_after
            # Float residue of an exact consumption (0.3 - 0.1 * 3) is stored as 0
            if not allow_negative and stock_after < 0:
                stock_after = 0.0
            movement.material.stock = stock_after
            movement.material.updated_at = now

        order.status = "completed"
        order.completed_at = now
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_COMPLETE,
                entity="order",
                entity_id=order.id,
                details=f"Ordre de fabrication {order.order_number} complété",
                commit=False,
            )
        return order

    return run_in_transaction(_op)


def open_orders() -> list[ManufacturingOrder]:
    """Orders neither completed nor cancelled, newest first."""
    return (
        db.session.query(ManufacturingOrder)
        .filter(ManufacturingOrder.status.in_(COMPLETABLE_STATUSES))
        .order_by(ManufacturingOrder.created_at.desc(), ManufacturingOrder.id.desc())
        .all()
    )


def order_status_counts() -> dict[str, int]:
    counts = {status: 0 for status in ORDER_STATUSES}
    rows = (
        db.session.query(ManufacturingOrder.status, db.func.count(ManufacturingOrder.id))
        .group_by(ManufacturingOrder.status)
        .all()
    )
    for status, count in rows:
        counts[status] = count
    return counts


def serialize_order(order: ManufacturingOrder, *, with_plan: bool = False) -> dict:
    data = order.to_dict()
    formula = db.session.get(Formula, order.formula_id)
    data["formula_code"] = formula.code if formula else None
    data["formula_name"] = formula.name if formula else None
    if with_plan:
        plan = _plan(order, formula) if formula else None
        data["consumption"] = [m.to_dict() for m in plan] if plan is not None else None
    return data
