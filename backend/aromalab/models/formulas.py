from __future__ import annotations

from ..extensions import db
from aromalab.time_utils import to_utc_z


class Formula(db.Model):
    """
    A named recipe: raw-material quantities intended to total 100 kg.

    WHY total_weight is stored: list views show it without loading every
    ingredient. It is recomputed by formula_service on every add/update.

    Validity (total within tolerance of the target weight) is derived on read
    and never persisted. Invalid formulas are storable.
    """
    __tablename__ = "formulas"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_formulas_code"),
        db.Index("ix_formulas_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    total_weight = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    ingredients = db.relationship(
        "FormulaIngredient",
        back_populates="formula",
        order_by="FormulaIngredient.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Formula id={self.id} code={self.code!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "display_code": f"F{self.code}",
            "name": self.name,
            "description": self.description,
            "ingredients": [ing.to_dict() for ing in self.ingredients],
            "total_weight": self.total_weight,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class FormulaIngredient(db.Model):
    """
    One line of a formula.

    material_id is a non-owning reference with no foreign key: a formula may
    keep pointing at a material id that no longer exists (shown as "Inconnu").
    Material deletion is guarded by material_service instead.
    """
    __tablename__ = "formula_ingredients"
    __table_args__ = (
        db.Index("ix_formula_ingredients_material", "material_id"),
        db.Index("ix_formula_ingredients_formula_position", "formula_id", "position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    formula_id = db.Column(db.Integer, db.ForeignKey("formulas.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    material_id = db.Column(db.Integer, nullable=True)
    # kg for a 100 kg batch
    quantity = db.Column(db.Float, nullable=False, default=0.0)

    formula = db.relationship("Formula", back_populates="ingredients")

    def to_dict(self) -> dict:
        return {
            "material_id": self.material_id,
            "quantity": self.quantity,
        }
