# backend/stockcheck/routes/dashboard.py
"""
Dashboard rollup routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth
from ..responses import respond
from ..services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.route("/requests", methods=["GET"])
@require_auth
def request_dashboard():
    return respond(dashboard_service.get_request_dashboard(g.current_user.id, request.args.get("store_code")))


@dashboard_bp.route("/counts", methods=["GET"])
@require_auth
def count_dashboard():
    return respond(dashboard_service.get_count_dashboard(request.args.get("store_code")))
