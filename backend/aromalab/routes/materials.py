# Overview: Flask API routes for raw materials; parses input and returns JSON responses.

# backend/aromalab/routes/materials.py
"""
Raw material routes.

SECURITY: All routes require authentication.
- Read operations are open to every authenticated user
- Create, update, stock top-up and delete require the admin role
"""
from flask import Blueprint, request, g, current_app

from ..models import RawMaterial
from ..services import material_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_material,
    enforce_rules_stock_top_up,
    coerce_int,
    ValidationError,
)
from ..decorators import require_auth, require_admin

MATERIAL_POLICY = ModelValidationPolicy(
    writable_fields={"designation", "cas", "supplier", "stock", "price"},
    required_on_create={"designation"},
)

materials_bp = Blueprint("materials", __name__, url_prefix="/api/materials")


def _serialize(material: RawMaterial) -> dict:
    data = material.to_dict()
    data["stock_status"] = material_service.stock_status(material.stock)
    return data


@materials_bp.get("")
@require_auth
def list_materials():
    """
    List raw materials ordered by code.

    Query params:
    - search: str (optional) - matches code, designation, CAS, supplier
    """
    materials = material_service.list_materials(search=request.args.get("search"))
    return {"materials": [_serialize(m) for m in materials], "count": len(materials)}


@materials_bp.get("/<int:material_id>")
@require_auth
def get_material(material_id: int):
    """Material detail with the formulas that use it."""
    material = material_service.get_material(material_id)
    if material is None:
        return {"error": "Material not found"}, 404

    data = _serialize(material)
    data["used_in"] = [
        {"id": f.id, "code": f.code, "name": f.name}
        for f in material_service.find_formulas_referencing(material_id)
    ]
    return {"material": data}


@materials_bp.post("")
@require_auth
@require_admin
def create_material():
    """Create a raw material; the code is assigned automatically."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=RawMaterial, payload=payload, policy=MATERIAL_POLICY, partial=False)
        enforce_rules_material(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    material = material_service.add_material(patch, actor=g.session_context)
    return {"material": _serialize(material)}, 201


@materials_bp.patch("/<int:material_id>")
@require_auth
@require_admin
def update_material(material_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=RawMaterial, payload=payload, policy=MATERIAL_POLICY, partial=True)
        enforce_rules_material(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    material = material_service.update_material(material_id, patch, actor=g.session_context)
    if material is None:
        return {"error": "Material not found"}, 404
    return {"material": _serialize(material)}


@materials_bp.post("/<int:material_id>/stock")
@require_auth
@require_admin
def add_stock(material_id: int):
    """
    Add stock to a material.

    Request body:
    - quantity: number (kg, > 0)
    """
    payload = request.get_json(silent=True) or {}

    try:
        quantity = enforce_rules_stock_top_up(payload)
    except ValidationError as e:
        return {"error": str(e)}, 400

    material = material_service.add_stock(material_id, quantity, actor=g.session_context)
    if material is None:
        return {"error": "Material not found"}, 404
    return {"material": _serialize(material), "added": quantity}


@materials_bp.delete("/<int:material_id>")
@require_auth
@require_admin
def delete_material(material_id: int):
    """
    Delete a material.

    Returns 409 with the blocking formulas when a formula still uses it.
    """
    result = material_service.delete_material(material_id, actor=g.session_context)

    if not result.found:
        return {"error": "Material not found"}, 404

    if result.blocked:
        current_app.logger.info(
            "Delete of material %s blocked by formulas %s", material_id, result.blocking_labels
        )
        return {
            "error": "Material is used in formulas",
            "message": f"Utilisée dans: {', '.join(result.blocking_labels)}",
            "result": result.to_dict(),
        }, 409

    return {"result": result.to_dict()}


@materials_bp.post("/bulk-delete")
@require_auth
@require_admin
def bulk_delete_materials():
    """
    Delete several materials at once.

    Request body:
    - ids: list[int]

    Nothing is deleted if any selected material is used in a formula (409).
    """
    payload = request.get_json(silent=True) or {}
    raw_ids = payload.get("ids")
    if not isinstance(raw_ids, list) or not raw_ids:
        return {"error": "ids must be a non-empty list"}, 400

    try:
        ids = [coerce_int("ids", value) for value in raw_ids]
    except ValidationError as e:
        return {"error": str(e)}, 400

    results = material_service.delete_materials(ids, actor=g.session_context)
    blocked = [r for r in results if r.blocked]
    if blocked:
        return {
            "error": "Some materials are used in formulas",
            "blocked": [r.to_dict() for r in blocked],
        }, 409

    return {
        "results": [r.to_dict() for r in results],
        "deleted": sum(1 for r in results if r.deleted),
    }
