# backend/stockcheck/routes/requests.py
"""
Count request ticket API routes.
"""
from flask import Blueprint, g, request

from ..decorators import require_auth, require_profile
from ..models.enums import UserProfile
from ..responses import error_response, json_body, respond, to_list
from ..services import audit_service, request_service
from ..services.errors import ValidationError

requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")

MANAGERS = (UserProfile.ADMINISTRADOR, UserProfile.GERENTE_TIENDA, UserProfile.LIDER)


def _list_arg(args, name: str):
    """Repeated and comma-separated query values, e.g. ?division_codes=01,02&division_codes=03."""
    values = [part.strip() for raw in args.getlist(name) for part in raw.split(",") if part.strip()]
    return values or None


@requests_bp.route("", methods=["POST"])
@require_auth
def create_request():
    """
    Create a ticket.

    Request body:
    {
        "store_code": str,
        "codes": [str, ...],
        "priority": "BAJA" | "NORMAL" | "ALTA" | "URGENTE" (optional),
        "description": str (optional),
        "due_date": ISO-8601 (optional)
    }

    Returns:
        201: Ticket created (with codes)
        400: Invalid request
        404: Store not found
    """
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)

    result = request_service.create_ticket(
        g.current_user.id,
        data.get("store_code"),
        data.get("codes"),
        priority=data.get("priority"),
        description=data.get("description"),
        due_date=data.get("due_date"),
    )
    return respond(result, lambda ticket: ticket.to_dict(include_codes=True), status=201)


@requests_bp.route("/bulk", methods=["POST"])
@require_auth
def bulk_create_requests():
    """Body: {"items": [<create body>, ...]}. Always 200 with per-item results."""
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    return respond(request_service.bulk_create_tickets(data.get("items"), g.current_user.id))


@requests_bp.route("", methods=["GET"])
@require_auth
def list_requests():
    args = request.args
    result = request_service.list_tickets(
        store_code=args.get("store_code"),
        status=args.get("status"),
        priority=args.get("priority"),
        requester_id=args.get("requester_id", type=int),
        assigned_to_id=args.get("assigned_to_id", type=int),
        date_from=args.get("date_from"),
        date_to=args.get("date_to"),
        division_codes=_list_arg(args, "division_codes"),
        search=args.get("search"),
        is_active=args.get("is_active"),
        page=args.get("page"),
        page_size=args.get("page_size"),
    )
    return respond(result)


@requests_bp.route("/<int:request_id>", methods=["GET"])
@require_auth
def get_request(request_id: int):
    return respond(request_service.get_ticket(request_id))


@requests_bp.route("/ticket/<string:ticket_number>", methods=["GET"])
@require_auth
def get_request_by_number(ticket_number: str):
    return respond(request_service.get_ticket_by_number(ticket_number))


@requests_bp.route("/<int:request_id>/history", methods=["GET"])
@require_auth
def get_request_history(request_id: int):
    return respond(request_service.get_ticket_history(request_id), to_list)


@requests_bp.route("/codes/<int:code_id>/history", methods=["GET"])
@require_auth
def get_code_history(code_id: int):
    return respond(audit_service.get_code_history(code_id), to_list)


@requests_bp.route("/codes/<int:code_id>/status", methods=["PUT"])
@require_auth
def update_code_status(code_id: int):
    """
    Request body:
    {
        "status": str,
        "notes": str (optional)
    }

    Returns:
        200: Updated code
        400: Invalid status
        404: Code not found
        409: Transition not allowed
    """
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = request_service.update_code_status(code_id, data.get("status"), data.get("notes"), g.current_user.id)
    return respond(result)


@requests_bp.route("/codes/<int:code_id>/assign", methods=["PUT"])
@require_auth
@require_profile(*MANAGERS)
def assign_code(code_id: int):
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    if data.get("user_id") is None:
        return error_response(ValidationError("user_id is required", field="user_id"))
    result = request_service.assign_code(code_id, data["user_id"], data.get("notes"), g.current_user.id)
    return respond(result)


@requests_bp.route("/codes/bulk-assign", methods=["PUT"])
@require_auth
@require_profile(*MANAGERS)
def bulk_assign_codes():
    """Body: {"code_ids": [int], "user_id": int, "notes": str}."""
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    if data.get("user_id") is None:
        return error_response(ValidationError("user_id is required", field="user_id"))
    result = request_service.bulk_assign_codes(
        data.get("code_ids"), data["user_id"], data.get("notes"), g.current_user.id
    )
    return respond(result)


@requests_bp.route("/codes/bulk-status", methods=["PUT"])
@require_auth
def bulk_update_code_status():
    """Body: {"code_ids": [int], "status": str, "notes": str}."""
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = request_service.bulk_update_code_status(
        data.get("code_ids"), data.get("status"), data.get("notes"), g.current_user.id
    )
    return respond(result)


@requests_bp.route("/<int:request_id>/comments", methods=["POST"])
@require_auth
def add_comment(request_id: int):
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = request_service.add_comment(request_id, data.get("code_id"), data.get("comment"), g.current_user.id)
    return respond(result, status=201)


@requests_bp.route("/<int:request_id>/close", methods=["POST"])
@require_auth
def close_request(request_id: int):
    return respond(request_service.close_ticket(request_id, g.current_user.id))


@requests_bp.route("/<int:request_id>/status", methods=["PUT"])
@require_auth
@require_profile(*MANAGERS)
def set_request_status(request_id: int):
    """Body: {"status": "DEVUELTO" | "CANCELADO", "comment": str}."""
    try:
        data = json_body()
    except ValidationError as e:
        return error_response(e)
    result = request_service.set_ticket_status(request_id, data.get("status"), data.get("comment"), g.current_user.id)
    return respond(result)


@requests_bp.route("/<int:request_id>/auto-assign", methods=["POST"])
@require_auth
@require_profile(*MANAGERS)
def auto_assign_codes(request_id: int):
    return respond(request_service.reassign_unassigned_codes(request_id, g.current_user.id), to_list)


@requests_bp.route("/my-codes", methods=["GET"])
@require_auth
def my_codes():
    result = request_service.get_my_assigned_codes(g.current_user.id, status=request.args.get("status"))
    return respond(result, to_list)


@requests_bp.route("/unassigned", methods=["GET"])
@require_auth
def unassigned_codes():
    return respond(request_service.list_unassigned_codes(request.args.get("store_code")), to_list)


@requests_bp.route("/activity", methods=["GET"])
@require_auth
def recent_activity():
    result = request_service.get_recent_activity(
        request.args.get("limit", 20),
        store_code=request.args.get("store_code"),
    )
    return respond(result)


@requests_bp.route("/team/<string:store_code>", methods=["GET"])
@require_auth
@require_profile(*MANAGERS)
def store_team(store_code: str):
    """Active LIDER / INVENTARIO / GERENTE_TIENDA users of a store with assigned and pending code counts."""
    return respond(request_service.get_store_team(store_code), to_list)
