# backend/stockcheck/routes/assignments.py
"""
Taxonomy grant API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_profile
from ..models.enums import UserProfile
from ..responses import error_response, json_body, respond, to_list
from ..services import assignment_service
from ..services.errors import ValidationError

assignments_bp = Blueprint("assignments", __name__, url_prefix="/api/assignments")

GRANTORS = (UserProfile.ADMINISTRADOR, UserProfile.GERENTE_TIENDA, UserProfile.LIDER)


@assignments_bp.route("", methods=["POST"])
@require_auth
@require_profile(*GRANTORS)
def create_grant():
    """
    Request body:
    {
        "user_id": int,
        "store_code": str,
        "assignment_type": "DIVISION" | "CATEGORIA" | "GRUPO" | "SUBGRUPO",
        "division_code": str, "division": str,
        "category_code": str, "category": str,      (CATEGORIA and deeper)
        "group_code": str, "group_name": str,       (GRUPO and deeper)
        "subgroup_code": str, "subgroup": str       (SUBGRUPO)
    }

    Returns:
        201: Grant created (previous grant of the same type deactivated)
        400: Missing scope codes
        404: User or store not found
        409: Profile cannot hold this level
    """
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    if data.get("user_id") is None:
        return error_response(ValidationError("user_id is required", field="user_id"))
    result = assignment_service.create_grant(
        data["user_id"],
        data.get("store_code"),
        data.get("assignment_type"),
        data,
        g.current_user.id,
    )
    return respond(result, status=201)


@assignments_bp.route("/<int:assignment_id>", methods=["DELETE"])
@require_auth
@require_profile(*GRANTORS)
def remove_grant(assignment_id: int):
    return respond(assignment_service.remove_grant(assignment_id, g.current_user.id))


@assignments_bp.route("", methods=["GET"])
@require_auth
def list_grants():
    args = request.args
    active = args.get("is_active", "true").strip().lower()
    result = assignment_service.list_grants(
        user_id=args.get("user_id", type=int),
        store_code=args.get("store_code"),
        assignment_type=args.get("assignment_type"),
        is_active=None if active in ("", "any") else active in ("1", "true", "yes"),
    )
    return respond(result, to_list)


@assignments_bp.route("/store/<string:store_code>", methods=["GET"])
@require_auth
def list_store_grants(store_code: str):
    return respond(assignment_service.list_store_grants(store_code), to_list)


@assignments_bp.route("/<int:assignment_id>/history", methods=["GET"])
@require_auth
def grant_history(assignment_id: int):
    return respond(assignment_service.get_grant_history(assignment_id), to_list)


@assignments_bp.route("/hierarchy", methods=["GET"])
@require_auth
def product_hierarchy():
    return respond(assignment_service.get_product_hierarchy(), to_list)


@assignments_bp.route("/resolve", methods=["GET"])
@require_auth
def resolve_product():
    """?store_code=T01&product_code=ABC -> resolved assignee or null."""
    store_code = request.args.get("store_code", "")
    product_code = request.args.get("product_code", "")
    if not store_code or not product_code:
        return error_response(ValidationError("store_code and product_code are required"))
    result = assignment_service.resolve_product(store_code, product_code)
    return respond(result, lambda resolution: resolution.to_dict() if resolution else None)
