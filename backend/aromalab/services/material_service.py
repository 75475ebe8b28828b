# Overview: Service-layer operations for raw materials; CRUD, stock top-ups and the deletion guard.

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app

from ..extensions import db
from ..models import RawMaterial, Formula, FormulaIngredient
from aromalab.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .identifier_service import next_material_code, format_material_code, format_formula_code
from . import activity_service
"""
Raw Material Invariants (authoritative)

- code is assigned by the repository (max + 1) and never changes.
- id, code and created_at are never overwritten by an update.
- A material referenced by any formula ingredient cannot be deleted. The
  guard reports the blocking formulas and mutates nothing; the caller must
  remove the references first. This is not retryable.
- Formulas are not re-validated when a material disappears by other means;
  their ingredients keep the orphaned id.
"""


MATERIAL_MUTABLE_FIELDS = ("designation", "cas", "supplier", "stock", "price")


@dataclass
class MaterialDeletion:
    """Outcome of a guarded material delete."""
    material_id: int
    found: bool
    deleted: bool
    material_code: str | None = None
    blocking_formulas: list[Formula] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.blocking_formulas)

    @property
    def blocking_labels(self) -> list[str]:
        return [f"{format_formula_code(f.code)} - {f.name}" for f in self.blocking_formulas]

    def to_dict(self) -> dict:
        return {
            "material_id": self.material_id,
            "material_code": format_material_code(self.material_code) if self.material_code else None,
            "found": self.found,
            "deleted": self.deleted,
            "blocked": self.blocked,
            "blocking_formulas": [
                {"id": f.id, "code": f.code, "name": f.name, "label": label}
                for f, label in zip(self.blocking_formulas, self.blocking_labels)
            ],
        }


def list_materials(search: str | None = None) -> list[RawMaterial]:
    """
    All materials ordered by numeric code.

    search matches code, designation, CAS number and supplier (case-insensitive).
    """
    q = db.session.query(RawMaterial)

    if search and search.strip():
        term = search.strip()
        if term.upper().startswith("MP") and term[2:].isdigit():
            term = term[2:]
        pattern = f"%{term}%"
        q = q.filter(
            db.or_(
                RawMaterial.code.ilike(pattern),
                RawMaterial.designation.ilike(pattern),
                RawMaterial.cas.ilike(pattern),
                RawMaterial.supplier.ilike(pattern),
            )
        )

    return q.order_by(db.cast(RawMaterial.code, db.Integer), RawMaterial.id).all()


def get_material(material_id: int) -> RawMaterial | None:
    return db.session.get(RawMaterial, material_id)


def add_material(data: dict, actor=None) -> RawMaterial:
    """
    Create a raw material.

    The code is always auto-assigned; a code in data is ignored.
    """
    def _op():
        now = utcnow()
        material = RawMaterial(
            code=next_material_code(),
            designation=data.get("designation", ""),
            cas=data.get("cas"),
            supplier=data.get("supplier"),
            stock=data.get("stock", 0.0) or 0.0,
            price=data.get("price", 0.0) or 0.0,
            created_at=now,
            updated_at=now,
        )
        db.session.add(material)
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_CREATE,
                entity="material",
                entity_id=material.id,
                details=f"Matière première {format_material_code(material.code)} créée",
                commit=False,
            )
        return material

    return run_in_transaction(_op)


def update_material(material_id: int, patch: dict, actor=None) -> RawMaterial | None:
    """
    Merge-patch a material and bump updated_at.

    Returns None when the material does not exist.
    """
    def _op():
        material = lock_for_update(
            db.session.query(RawMaterial).filter_by(id=material_id)
        ).first()
        if material is None:
            return None

        for key in MATERIAL_MUTABLE_FIELDS:
            if key in patch:
                setattr(material, key, patch[key])
        material.updated_at = utcnow()
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_UPDATE,
                entity="material",
                entity_id=material.id,
                details=f"Matière première {format_material_code(material.code)} modifiée",
                commit=False,
            )
        return material

    return run_in_transaction(_op)


def add_stock(material_id: int, quantity: float, actor=None) -> RawMaterial | None:
    """
    Top up a material's stock by quantity kg.

    Raises ValueError when quantity is not positive.
    Returns None when the material does not exist.
    """
    if quantity is None or quantity <= 0:
        raise ValueError("quantity must be > 0")

    def _op():
        material = lock_for_update(
            db.session.query(RawMaterial).filter_by(id=material_id)
        ).first()
        if material is None:
            return None

        material.stock = (material.stock or 0.0) + quantity
        material.updated_at = utcnow()
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_ADD_STOCK,
                entity="material",
                entity_id=material.id,
                details=(
                    f"+{quantity:.2f} kg ajoutés à {format_material_code(material.code)} "
                    f"(nouveau stock: {material.stock:.2f} kg)"
                ),
                commit=False,
            )
        return material

    return run_in_transaction(_op)


def find_formulas_referencing(material_id: int) -> list[Formula]:
    """All formulas with at least one ingredient pointing at material_id."""
    return (
        db.session.query(Formula)
        .join(FormulaIngredient, FormulaIngredient.formula_id == Formula.id)
        .filter(FormulaIngredient.material_id == material_id)
        .distinct()
        .order_by(Formula.id)
        .all()
    )


def delete_material(material_id: int, actor=None) -> MaterialDeletion:
    """
    Delete a material unless a formula still references it.

    - Not found: found=False, deleted=False
    - Referenced: deleted=False, blocking_formulas set, nothing mutated
    - Otherwise: deleted=True
    """
    def _op():
        material = lock_for_update(
            db.session.query(RawMaterial).filter_by(id=material_id)
        ).first()
        if material is None:
            return MaterialDeletion(material_id=material_id, found=False, deleted=False)

        blocking = find_formulas_referencing(material_id)
        if blocking:
            return MaterialDeletion(
                material_id=material_id,
                found=True,
                deleted=False,
                material_code=material.code,
                blocking_formulas=blocking,
            )

        code = material.code
        db.session.delete(material)
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_DELETE,
                entity="material",
                entity_id=material_id,
                details=f"Matière première {format_material_code(code)} supprimée",
                commit=False,
            )
        return MaterialDeletion(material_id=material_id, found=True, deleted=True, material_code=code)

    return run_in_transaction(_op)


def delete_materials(material_ids: list[int], actor=None) -> list[MaterialDeletion]:
    """
    Delete several materials as one unit.

    If any selected material is referenced by a formula, nothing is deleted
    and the result lists every blocked material. Unknown ids are reported
    with found=False and do not block the others.
    """
    def _op():
        materials = lock_for_update(
            db.session.query(RawMaterial).filter(RawMaterial.id.in_(material_ids))
        ).all()
        by_id = {m.id: m for m in materials}

        results = []
        for material_id in material_ids:
            material = by_id.get(material_id)
            if material is None:
                results.append(MaterialDeletion(material_id=material_id, found=False, deleted=False))
                continue
            results.append(MaterialDeletion(
                material_id=material_id,
                found=True,
                deleted=False,
                material_code=material.code,
                blocking_formulas=find_formulas_referencing(material_id),
            ))

        if any(r.blocked for r in results):
            return results

        for result in results:
            if not result.found:
                continue
            db.session.delete(by_id[result.material_id])
            result.deleted = True
            if actor is not None:
                activity_service.log_activity(
                    actor,
                    action=activity_service.ACTION_DELETE,
                    entity="material",
                    entity_id=result.material_id,
                    details=f"Matière première {format_material_code(result.material_code)} supprimée",
                    commit=False,
                )
        db.session.flush()
        return results

    return run_in_transaction(_op)


def stock_status(stock: float) -> str:
    """Classify a stock level: "low", "medium", "good" or "excellent"."""
    low = current_app.config.get("LOW_STOCK_THRESHOLD_KG", 0.02)
    medium = current_app.config.get("MEDIUM_STOCK_THRESHOLD_KG", 0.1)
    good = current_app.config.get("GOOD_STOCK_THRESHOLD_KG", 0.5)
    if stock < low:
        return "low"
    if stock < medium:
        return "medium"
    if stock < good:
        return "good"
    return "excellent"


def low_stock_materials(threshold_kg: float | None = None) -> list[RawMaterial]:
    """Materials whose stock is below threshold_kg (LOW_STOCK_THRESHOLD_KG by default)."""
    if threshold_kg is None:
        threshold_kg = current_app.config.get("LOW_STOCK_THRESHOLD_KG", 0.02)
    return (
        db.session.query(RawMaterial)
        .filter(RawMaterial.stock < threshold_kg)
        .order_by(RawMaterial.stock, RawMaterial.id)
        .all()
    )
