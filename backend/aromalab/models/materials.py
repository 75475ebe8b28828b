from __future__ import annotations

from ..extensions import db
from aromalab.time_utils import to_utc_z


class RawMaterial(db.Model):
    """
    Raw material master data with its current stock.

    CODE DESIGN DECISION:
    RawMaterial.code stores the bare sequential number ("1", "2", ...).
    The "MP" prefix is a display concern (identifier_service.format_material_code).

    STOCK:
    - stock is kept in kg and mutated in place (manual edits, top-ups,
      order completion deductions).
    - version_id_col gives optimistic locking so two concurrent deductions
      cannot silently overwrite each other (StaleDataError is retried).
    """
    __tablename__ = "raw_materials"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_raw_materials_code"),
        db.Index("ix_raw_materials_designation", "designation"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(16), nullable=False)
    designation = db.Column(db.String(255), nullable=False)
    cas = db.Column(db.String(64), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)

    # kg
    stock = db.Column(db.Float, nullable=False, default=0.0)
    # currency per kg
    price = db.Column(db.Float, nullable=False, default=0.0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<RawMaterial id={self.id} code={self.code!r} designation={self.designation!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "display_code": f"MP{self.code}",
            "designation": self.designation,
            "cas": self.cas,
            "supplier": self.supplier,
            "stock": self.stock,
            "price": self.price,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
