# Overview: Read-only headline figures for the dashboard.

from ..extensions import db
from ..models import RawMaterial, Formula
from .order_service import order_status_counts, COMPLETABLE_STATUSES
from .material_service import low_stock_materials


def get_dashboard_stats() -> dict:
    """
    Materials and formulas on file, orders still to process, total stock.

    "Open" orders are those neither completed nor cancelled.
    """
    total_stock = db.session.query(
        db.func.coalesce(db.func.sum(RawMaterial.stock), 0.0)
    ).scalar()

    counts = order_status_counts()

    return {
        "materials": db.session.query(RawMaterial).count(),
        "formulas": db.session.query(Formula).count(),
        "open_orders": sum(counts[s] for s in COMPLETABLE_STATUSES),
        "orders_by_status": counts,
        "total_stock": float(total_stock or 0.0),
        "low_stock_materials": len(low_stock_materials()),
    }
