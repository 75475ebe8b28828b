# Overview: Flask API routes for the activity log.

from flask import Blueprint, request

from ..models import ACTIVITY_ENTITIES
from ..services import activity_service
from ..decorators import require_auth, require_admin

activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("")
@require_auth
@require_admin
def list_activity():
    """
    Activity log, newest first.

    Query params:
    - entity: material | formula | order | user (optional)
    - search: str (optional) - matches action, details, user name
    """
    entity = request.args.get("entity")
    if entity and entity not in ACTIVITY_ENTITIES:
        return {"error": f"entity must be one of: {', '.join(ACTIVITY_ENTITIES)}"}, 400

    entries = activity_service.list_activity(entity=entity, search=request.args.get("search"))
    return {"activity": [e.to_dict() for e in entries], "count": len(entries)}
