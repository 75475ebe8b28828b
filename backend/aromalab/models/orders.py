from __future__ import annotations

from ..extensions import db
from aromalab.time_utils import to_utc_z


ORDER_STATUSES = ("pending", "in-progress", "completed", "cancelled")

# No transition is allowed out of these
TERMINAL_ORDER_STATUSES = ("completed", "cancelled")


class ManufacturingOrder(db.Model):
    """
    Request to produce coefficient x 100 kg of a formula.

    LIFECYCLE:
    - Created as 'pending'
    - 'pending' -> 'completed' only through order_service.complete_order
      (deducts stock atomically)
    - 'pending' -> 'cancelled' through order_service.cancel_order (no stock effect)
    - 'pending' -> 'in-progress' through order_service.update_order (status patch)
    - 'completed' and 'cancelled' are terminal
    """
    __tablename__ = "manufacturing_orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_manufacturing_orders_number"),
        db.CheckConstraint(
            "status IN ('pending', 'in-progress', 'completed', 'cancelled')",
            name="ck_manufacturing_orders_status",
        ),
        db.Index("ix_manufacturing_orders_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(32), nullable=False)

    # Not a foreign key: orders are created without checking the formula exists
    formula_id = db.Column(db.Integer, nullable=False, index=True)
    coefficient = db.Column(db.Float, nullable=False, default=1.0)

    status = db.Column(db.String(16), nullable=False, default="pending")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    creator = db.relationship("User", foreign_keys=[created_by])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def produced_weight(self) -> float:
        return self.coefficient * 100.0

    def __repr__(self) -> str:
        return f"<ManufacturingOrder id={self.id} number={self.order_number!r} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "formula_id": self.formula_id,
            "coefficient": self.coefficient,
            "produced_weight": self.produced_weight,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }
