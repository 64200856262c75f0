"""
Pipelines: spreadsheets, their column schema and their rows.

Blueprint: spreadsheet_bp
Prefix: /api/v1

Endpoints:
  Spreadsheets:
    GET/POST       /spreadsheets                  -- List/create
    GET/PUT/DELETE /spreadsheets/<sid>            -- Single spreadsheet CRUD

  Columns (schema registry):
    GET/POST       /spreadsheets/<sid>/columns    -- Ordered list/define
    PUT/DELETE     /columns/<cid>                 -- Update/remove

  Rows:
    GET/POST       /spreadsheets/<sid>/rows       -- Ordered list/create
    GET/PUT/DELETE /rows/<rid>                    -- Single row CRUD
"""

import logging

from flask import Blueprint, jsonify, request

from contrivance.blueprints import actor, json_body, pagination_args
from contrivance.services import row_service, spreadsheet_service
from contrivance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

spreadsheet_bp = Blueprint("spreadsheet", __name__, url_prefix="/api/v1")
register_error_handlers(spreadsheet_bp)

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _row_payload(data: dict) -> dict | None:
    """Rows accept either ``{"data": {...}}`` or the value map itself.

    A wrapped map with sibling keys is ambiguous and yields None.
    """
    if "data" in data and isinstance(data["data"], dict):
        if len(data) > 1:
            return None
        return data["data"]
    return data


def _ambiguous_row_body():
    return api_error(
        E.VALIDATION_INVALID,
        "Send either {\"data\": {...}} or the value map itself, not both",
    )


# ------------------------------------------------------------------
#  Spreadsheets
# ------------------------------------------------------------------

@spreadsheet_bp.route("/spreadsheets", methods=["GET"])
def list_spreadsheets_route():
    """List spreadsheets visible to ``owner_id`` (all when omitted)."""
    limit, offset = pagination_args()
    owner_id = request.args.get("owner_id") or None
    include_public = request.args.get("include_public", "true").lower() in _TRUE_STRINGS
    items, total = spreadsheet_service.list_spreadsheets(
        owner_id=owner_id, include_public=include_public, limit=limit, offset=offset,
    )
    return jsonify({"spreadsheets": items, "total": total}), 200


@spreadsheet_bp.route("/spreadsheets", methods=["POST"])
def create_spreadsheet_route():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    owner_id = data.get("owner_id") or actor()
    sheet = spreadsheet_service.create_spreadsheet(data, owner_id=owner_id)
    return jsonify(sheet), 201


@spreadsheet_bp.route("/spreadsheets/<int:sid>", methods=["GET"])
def get_spreadsheet_route(sid):
    return jsonify(spreadsheet_service.get_spreadsheet(sid)), 200


@spreadsheet_bp.route("/spreadsheets/<int:sid>", methods=["PUT"])
def update_spreadsheet_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return jsonify(spreadsheet_service.update_spreadsheet(sid, data, actor=actor())), 200


@spreadsheet_bp.route("/spreadsheets/<int:sid>", methods=["DELETE"])
def delete_spreadsheet_route(sid):
    spreadsheet_service.delete_spreadsheet(sid, actor=actor())
    return jsonify({"deleted": True}), 200


# ------------------------------------------------------------------
#  Columns
# ------------------------------------------------------------------

@spreadsheet_bp.route("/spreadsheets/<int:sid>/columns", methods=["GET"])
def list_columns_route(sid):
    columns = spreadsheet_service.list_columns(sid)
    return jsonify({"columns": columns, "total": len(columns)}), 200


@spreadsheet_bp.route("/spreadsheets/<int:sid>/columns", methods=["POST"])
def define_column_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    column = spreadsheet_service.define_column(sid, data, actor=actor())
    return jsonify(column), 201


@spreadsheet_bp.route("/columns/<int:cid>", methods=["PUT"])
def update_column_route(cid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return jsonify(spreadsheet_service.update_column(cid, data, actor=actor())), 200


@spreadsheet_bp.route("/columns/<int:cid>", methods=["DELETE"])
def delete_column_route(cid):
    spreadsheet_service.delete_column(cid, actor=actor())
    return jsonify({"deleted": True}), 200


# ------------------------------------------------------------------
#  Rows
# ------------------------------------------------------------------

@spreadsheet_bp.route("/spreadsheets/<int:sid>/rows", methods=["GET"])
def list_rows_route(sid):
    limit, offset = pagination_args(default_limit=1000, max_limit=5000)
    rows, total = row_service.list_rows(sid, limit=limit, offset=offset)
    return jsonify({"rows": rows, "total": total}), 200


@spreadsheet_bp.route("/spreadsheets/<int:sid>/rows", methods=["POST"])
def create_row_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    values = _row_payload(data)
    if values is None:
        return _ambiguous_row_body()
    row = row_service.create_row(sid, values, actor=actor())
    return jsonify(row), 201


@spreadsheet_bp.route("/rows/<int:rid>", methods=["GET"])
def get_row_route(rid):
    return jsonify(row_service.get_row(rid)), 200


@spreadsheet_bp.route("/rows/<int:rid>", methods=["PUT"])
def update_row_route(rid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    values = _row_payload(data)
    if values is None:
        return _ambiguous_row_body()
    return jsonify(row_service.update_row(rid, values, actor=actor())), 200


@spreadsheet_bp.route("/rows/<int:rid>", methods=["DELETE"])
def delete_row_route(rid):
    unbound = row_service.delete_row(rid, actor=actor())
    return jsonify({"deleted": True, "todos_unbound": unbound}), 200
