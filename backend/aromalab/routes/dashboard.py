# Overview: Flask API route for the dashboard figures.

from flask import Blueprint

from ..services.dashboard_service import get_dashboard_stats
from ..decorators import require_auth

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard():
    return get_dashboard_stats()
