# backend/stockcheck/routes/counts.py
"""
Count reconciliation API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_profile
from ..models.enums import UserProfile
from ..responses import error_response, json_body, respond, to_list
from ..services import count_service
from ..services.errors import ValidationError

counts_bp = Blueprint("counts", __name__, url_prefix="/api/counts")

REVIEWERS = (UserProfile.ADMINISTRADOR, UserProfile.GERENTE_TIENDA, UserProfile.LIDER)


@counts_bp.route("/from-request/<int:request_id>", methods=["POST"])
@require_auth
def materialize_counts(request_id: int):
    """
    Create counts for every code of a ticket that has none yet.

    Returns:
        201: {"created": [count_id, ...]} (empty when already materialized)
        404: Ticket not found or closed
        502: Catalog unavailable or inconsistent
    """
    result = count_service.materialize_counts(request_id, g.current_user.id)
    return respond(result, lambda ids: {"created": ids, "created_count": len(ids)}, status=201)


@counts_bp.route("", methods=["GET"])
@require_auth
def list_counts():
    args = request.args
    result = count_service.list_counts(
        request_id=args.get("request_id", type=int),
        store_code=args.get("store_code"),
        status=args.get("status"),
        code_filter_status=args.get("code_filter_status"),
        division_code=args.get("division_code"),
        category_code=args.get("category_code"),
        assigned_to_id=args.get("assigned_to_id", type=int),
        has_difference=args.get("has_difference"),
        date_from=args.get("date_from"),
        date_to=args.get("date_to"),
        search=args.get("search"),
        is_active=args.get("is_active", "true"),
        page=args.get("page"),
        page_size=args.get("page_size"),
    )
    return respond(result)


@counts_bp.route("/<int:count_id>", methods=["GET"])
@require_auth
def get_count(count_id: int):
    return respond(count_service.get_count(count_id))


@counts_bp.route("/<int:count_id>/history", methods=["GET"])
@require_auth
def get_count_history(count_id: int):
    return respond(count_service.get_count_history(count_id), to_list)


@counts_bp.route("/<int:count_id>/physical", methods=["PUT"])
@require_auth
def register_physical_count(count_id: int):
    """
    Request body:
    {
        "quantity": number (>= 0),
        "comment": str (optional)
    }

    Returns:
        200: Count with recomputed variance
        400: Invalid quantity
        404: Count not found
        409: Count already adjusted
    """
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = count_service.register_physical_count(
        count_id, data.get("quantity"), data.get("comment"), g.current_user.id
    )
    return respond(result)


@counts_bp.route("/<int:count_id>/status", methods=["PUT"])
@require_auth
@require_profile(*REVIEWERS)
def update_count_status(count_id: int):
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = count_service.update_count_status(count_id, data.get("status"), data.get("comment"), g.current_user.id)
    return respond(result)


@counts_bp.route("/<int:count_id>/comments", methods=["POST"])
@require_auth
def add_count_comment(count_id: int):
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = count_service.add_count_comment(count_id, data.get("comment"), g.current_user.id)
    return respond(result, status=201)


@counts_bp.route("/batch", methods=["POST"])
@require_auth
def batch_register_counts():
    """
    Request body:
    {
        "items": [{"count_id": int, "quantity": number, "comment": str}, ...]
    }

    Returns:
        200: {"results": [...], "success_count": int, "fail_count": int}
        400: Empty batch
    """
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    return respond(count_service.batch_register_counts(data.get("items"), g.current_user.id))


@counts_bp.route("/pending/<int:request_id>", methods=["GET"])
@require_auth
def pending_counts(request_id: int):
    return respond(count_service.get_pending_counts_by_request(request_id), to_list)


@counts_bp.route("/my-counts", methods=["GET"])
@require_auth
def my_counts():
    result = count_service.get_my_assigned_counts(g.current_user.id, status=request.args.get("status"))
    return respond(result, to_list)
