# Overview: Flask API routes for formulas; parses input and returns JSON responses.

# backend/aromalab/routes/formulas.py
"""
Formula routes.

SECURITY: All routes require authentication.
- Read operations are open to every authenticated user
- Create, update and delete require the admin role

Formulas whose ingredients do not total 100 kg are accepted and flagged
with is_valid=false.
"""
from flask import Blueprint, request, g

from ..models import Formula
from ..services import formula_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    clean_formula_ingredients,
    coerce_int,
    ValidationError,
)
from ..decorators import require_auth, require_admin

FORMULA_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)

formulas_bp = Blueprint("formulas", __name__, url_prefix="/api/formulas")


def _parse(payload: dict, *, partial: bool) -> dict:
    fields = {k: v for k, v in payload.items() if k != "ingredients"}
    patch = validate_payload(model=Formula, payload=fields, policy=FORMULA_POLICY, partial=partial)
    if "ingredients" in payload or not partial:
        patch["ingredients"] = clean_formula_ingredients(payload.get("ingredients"))
    return patch


@formulas_bp.get("")
@require_auth
def list_formulas():
    """
    List formulas ordered by code.

    Query params:
    - search: str (optional) - matches code, name, description
    """
    formulas = formula_service.list_formulas(search=request.args.get("search"))
    return {
        "formulas": [formula_service.serialize_formula(f) for f in formulas],
        "count": len(formulas),
    }


@formulas_bp.get("/<int:formula_id>")
@require_auth
def get_formula(formula_id: int):
    """Formula detail with the per-ingredient breakdown."""
    formula = formula_service.get_formula(formula_id)
    if formula is None:
        return {"error": "Formula not found"}, 404
    return {"formula": formula_service.serialize_formula(formula, with_breakdown=True)}


@formulas_bp.post("")
@require_auth
@require_admin
def create_formula():
    """
    Create a formula.

    Request body:
    - name: str (required)
    - description: str
    - ingredients: list of {material_id, quantity} (at least one usable line)
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = _parse(payload, partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    formula = formula_service.add_formula(patch, actor=g.session_context)
    return {"formula": formula_service.serialize_formula(formula, with_breakdown=True)}, 201


@formulas_bp.patch("/<int:formula_id>")
@require_auth
@require_admin
def update_formula(formula_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = _parse(payload, partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    formula = formula_service.update_formula(formula_id, patch, actor=g.session_context)
    if formula is None:
        return {"error": "Formula not found"}, 404
    return {"formula": formula_service.serialize_formula(formula, with_breakdown=True)}


@formulas_bp.delete("/<int:formula_id>")
@require_auth
@require_admin
def delete_formula(formula_id: int):
    if not formula_service.delete_formula(formula_id, actor=g.session_context):
        return {"error": "Formula not found"}, 404
    return {"deleted": True}


@formulas_bp.post("/bulk-delete")
@require_auth
@require_admin
def bulk_delete_formulas():
    """
    Delete several formulas.

    Request body:
    - ids: list[int]
    """
    payload = request.get_json(silent=True) or {}
    raw_ids = payload.get("ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        return {"error": "ids must be a non-empty list"}, 400

    try:
        ids = [coerce_int("ids", value) for value in raw_ids]
    except ValidationError as e:
        return {"error": str(e)}, 400

    deleted = formula_service.delete_formulas(ids, actor=g.session_context)
    return {"deleted": deleted}
