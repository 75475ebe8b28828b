# Overview: Service-layer operations for formulas; CRUD and the 100 kg validity rule.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Formula, FormulaIngredient, RawMaterial
from aromalab.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .identifier_service import next_formula_code, format_formula_code, format_material_code
from . import activity_service


UNKNOWN_MATERIAL_LABEL = "Inconnu"

FORMULA_MUTABLE_FIELDS = ("name", "description")


def _target_weight() -> float:
    return float(current_app.config.get("FORMULA_TARGET_WEIGHT_KG", 100.0))


def _tolerance() -> float:
    return float(current_app.config.get("FORMULA_WEIGHT_TOLERANCE_KG", 0.01))


def _ingredient_quantity(ingredient) -> float:
    if isinstance(ingredient, dict):
        return float(ingredient.get("quantity") or 0.0)
    return float(ingredient.quantity or 0.0)


def formula_total(formula_or_ingredients) -> float:
    """Sum of ingredient quantities (kg)."""
    ingredients = getattr(formula_or_ingredients, "ingredients", formula_or_ingredients)
    return sum(_ingredient_quantity(ing) for ing in ingredients)


def is_formula_valid(formula_or_ingredients) -> bool:
    """
    A formula is valid iff its ingredients total the target weight
    (100 kg) within the tolerance (0.01 kg). Never persisted.
    """
    return abs(formula_total(formula_or_ingredients) - _target_weight()) < _tolerance()


def _build_ingredients(ingredients) -> list[FormulaIngredient]:
    rows = []
    for position, ing in enumerate(ingredients or []):
        rows.append(FormulaIngredient(
            position=position,
            material_id=ing.get("material_id"),
            quantity=float(ing.get("quantity") or 0.0),
        ))
    return rows


def list_formulas(search: str | None = None) -> list[Formula]:
    """All formulas ordered by numeric code; search matches code, name and description."""
    q = db.session.query(Formula)

    if search and search.strip():
        term = search.strip()
        if term.upper().startswith("F") and term[1:].isdigit():
            term = term[1:]
        pattern = f"%{term}%"
        q = q.filter(
            db.or_(
                Formula.code.ilike(pattern),
                Formula.name.ilike(pattern),
                Formula.description.ilike(pattern),
            )
        )

    return q.order_by(db.cast(Formula.code, db.Integer), Formula.id).all()


def get_formula(formula_id: int) -> Formula | None:
    return db.session.get(Formula, formula_id)


def add_formula(data: dict, actor=None) -> Formula:
    """
    Create a formula.

    The ingredient list is stored exactly as given, in order; filtering out
    empty lines is the caller's job (validation.clean_formula_ingredients).
    total_weight is always recomputed from the ingredients.
    """
    def _op():
        now = utcnow()
        ingredients = _build_ingredients(data.get("ingredients"))
        formula = Formula(
            code=next_formula_code(),
            name=data.get("name", ""),
            description=data.get("description"),
            ingredients=ingredients,
            total_weight=formula_total(ingredients),
            created_at=now,
            updated_at=now,
        )
        db.session.add(formula)
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_CREATE,
                entity="formula",
                entity_id=formula.id,
                details=f"Formule {format_formula_code(formula.code)} créée",
                commit=False,
            )
        return formula

    return run_in_transaction(_op)


def update_formula(formula_id: int, patch: dict, actor=None) -> Formula | None:
    """
    Merge-patch a formula.

    When "ingredients" is present the whole list is replaced.
    Returns None when the formula does not exist.
    """
    def _op():
        formula = lock_for_update(
            db.session.query(Formula).filter_by(id=formula_id)
        ).first()
        if formula is None:
            return None

        for key in FORMULA_MUTABLE_FIELDS:
            if key in patch:
                setattr(formula, key, patch[key])

        if "ingredients" in patch:
            formula.ingredients = _build_ingredients(patch["ingredients"])

        formula.total_weight = formula_total(formula.ingredients)
        formula.updated_at = utcnow()
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_UPDATE,
                entity="formula",
                entity_id=formula.id,
                details=f"Formule {format_formula_code(formula.code)} modifiée",
                commit=False,
            )
        return formula

    return run_in_transaction(_op)


def delete_formula(formula_id: int, actor=None) -> bool:
    """Delete a formula and its ingredient lines. Returns False if not found."""
    def _op():
        formula = db.session.get(Formula, formula_id)
        if formula is None:
            return False

        code = formula.code
        db.session.delete(formula)
        db.session.flush()

        if actor is not None:
            activity_service.log_activity(
                actor,
                action=activity_service.ACTION_DELETE,
                entity="formula",
                entity_id=formula_id,
                details=f"Formule {format_formula_code(code)} supprimée",
                commit=False,
            )
        return True

    return run_in_transaction(_op)


def delete_formulas(formula_ids: list[int], actor=None) -> int:
    """Delete several formulas; unknown ids are skipped. Returns the count deleted."""
    def _op():
        formulas = db.session.query(Formula).filter(Formula.id.in_(formula_ids)).all()
        for formula in formulas:
            code, fid = formula.code, formula.id
            db.session.delete(formula)
            if actor is not None:
                activity_service.log_activity(
                    actor,
                    action=activity_service.ACTION_DELETE,
                    entity="formula",
                    entity_id=fid,
                    details=f"Formule {format_formula_code(code)} supprimée",
                    commit=False,
                )
        db.session.flush()
        return len(formulas)

    return run_in_transaction(_op)


def ingredient_breakdown(formula: Formula) -> list[dict]:
    """
    Ingredient lines resolved against the materials table.

    An ingredient whose material no longer exists is labelled "Inconnu".
    share_percent is the ingredient's share of the formula total weight.
    """
    material_ids = {ing.material_id for ing in formula.ingredients if ing.material_id is not None}
    materials = {}
    if material_ids:
        materials = {
            m.id: m
            for m in db.session.query(RawMaterial).filter(RawMaterial.id.in_(material_ids)).all()
        }

    total = formula_total(formula)
    lines = []
    for ing in formula.ingredients:
        material = materials.get(ing.material_id)
        lines.append({
            "material_id": ing.material_id,
            "material_code": format_material_code(material.code) if material else None,
            "designation": material.designation if material else UNKNOWN_MATERIAL_LABEL,
            "quantity": ing.quantity,
            "share_percent": (ing.quantity / total * 100.0) if total else 0.0,
            "is_orphan": material is None,
        })
    return lines


def serialize_formula(formula: Formula, *, with_breakdown: bool = False) -> dict:
    data = formula.to_dict()
    data["is_valid"] = is_formula_valid(formula)
    if with_breakdown:
        data["breakdown"] = ingredient_breakdown(formula)
    return data
