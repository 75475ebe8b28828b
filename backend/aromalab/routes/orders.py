# Overview: Flask API routes for manufacturing orders; parses input and returns JSON responses.

# backend/aromalab/routes/orders.py
"""
Manufacturing order routes.

SECURITY: All routes require authentication; any authenticated user may
create, complete and cancel orders.

Completion deducts the formula's ingredients (scaled by the coefficient)
from stock in a single transaction. It answers 409 when the order is no
longer pending, when stock is insufficient, or when the formula or one of
its materials has disappeared.
"""
from flask import Blueprint, request, g, current_app

from ..models import ManufacturingOrder, ORDER_STATUSES
from ..services import order_service, formula_service
from ..services.order_service import OrderStateError, InsufficientStockError
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_order,
    ValidationError,
    ConflictError,
)
from ..decorators import require_auth

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"formula_id", "coefficient"},
    required_on_create={"formula_id", "coefficient"},
)

ORDER_PATCH_POLICY = ModelValidationPolicy(
    writable_fields={"formula_id", "coefficient", "status"},
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _conflict(e: ConflictError):
    body = {"error": str(e)}
    if isinstance(e, InsufficientStockError):
        body["shortages"] = [s.to_dict() for s in e.shortages]
    if isinstance(e, OrderStateError):
        body["conflict"] = "state"
    return body, 409


@orders_bp.get("")
@require_auth
def list_orders():
    """
    List orders, newest first.

    Query params:
    - search: str (optional) - matches order number and formula name
    - status: str (optional) - one of pending, in-progress, completed, cancelled
    """
    status = request.args.get("status")
    if status and status not in ORDER_STATUSES:
        return {"error": f"status must be one of: {', '.join(ORDER_STATUSES)}"}, 400

    orders = order_service.list_orders(search=request.args.get("search"), status=status)
    return {
        "orders": [order_service.serialize_order(o) for o in orders],
        "count": len(orders),
    }


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    """Order detail with the stock each ingredient consumes."""
    order = order_service.get_order(order_id)
    if order is None:
        return {"error": "Order not found"}, 404
    return {"order": order_service.serialize_order(order, with_plan=True)}


@orders_bp.post("")
@require_auth
def create_order():
    """
    Create a pending order.

    Request body:
    - formula_id: int (required, must exist)
    - coefficient: number (required, > 0)
    """
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=ManufacturingOrder,
            payload=payload,
            policy=ORDER_CREATE_POLICY,
            partial=False,
        )
        enforce_rules_order(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    if formula_service.get_formula(patch["formula_id"]) is None:
        return {"error": "Formula not found"}, 400

    order = order_service.add_order(patch, actor=g.session_context)
    return {"order": order_service.serialize_order(order)}, 201


@orders_bp.patch("/<int:order_id>")
@require_auth
def update_order(order_id: int):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(
            model=ManufacturingOrder,
            payload=payload,
            policy=ORDER_PATCH_POLICY,
            partial=True,
        )
        enforce_rules_order(patch)
        order = order_service.update_order(order_id, patch, actor=g.session_context)
    except ConflictError as e:
        return _conflict(e)
    except ValueError as e:
        return {"error": str(e)}, 400

    if order is None:
        return {"error": "Order not found"}, 404
    return {"order": order_service.serialize_order(order)}


@orders_bp.post("/<int:order_id>/complete")
@require_auth
def complete_order(order_id: int):
    """Complete a pending order and deduct stock."""
    try:
        order = order_service.complete_order(order_id, actor=g.session_context)
    except ConflictError as e:
        current_app.logger.warning("Completion of order %s refused: %s", order_id, e)
        return _conflict(e)
    except Exception:
        current_app.logger.exception("Failed to complete order")
        return {"error": "Internal server error"}, 500

    if order is None:
        return {"error": "Order not found"}, 404

    current_app.logger.info("Order %s completed by user %s", order.order_number, g.current_user.id)
    return {"order": order_service.serialize_order(order)}


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order(order_id: int):
    """Cancel a pending order (no stock effect)."""
    try:
        order = order_service.cancel_order(order_id, actor=g.session_context)
    except ConflictError as e:
        return _conflict(e)

    if order is None:
        return {"error": "Order not found"}, 404
    return {"order": order_service.serialize_order(order)}
