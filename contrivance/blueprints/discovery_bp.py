"""
Discovery: sessions per account, question responses, notes, export and reporting.

Blueprint: discovery_bp
Prefix: /api/v1/discovery

Endpoints:
  Sessions:
    POST  /sessions                              -- Start a session
    GET   /sessions/<sid>                        -- Session + responses + notes
    PUT   /sessions/<sid>/status                 -- Status transition
    GET   /accounts/<aid>/sessions               -- All sessions of an account
    GET   /accounts/<aid>/active-session         -- Latest session of an account

  Responses / notes:
    GET/POST   /sessions/<sid>/responses         -- List/upsert by question_id
    GET/POST   /sessions/<sid>/notes             -- List/add
    PUT/DELETE /notes/<nid>                      -- Update/delete

  Output:
    POST  /sessions/<sid>/export?format=         -- json | csv | xlsx download
    GET   /sessions/<sid>/summary                -- Vendors + sizing headline
    GET   /sessions/<sid>/report?view=           -- tree | flow | summary
"""

import logging

from flask import Blueprint, Response, jsonify, request

from contrivance.blueprints import actor, json_body
from contrivance.services import discovery_service
from contrivance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

discovery_bp = Blueprint("discovery", __name__, url_prefix="/api/v1/discovery")
register_error_handlers(discovery_bp)


# ------------------------------------------------------------------
#  Sessions
# ------------------------------------------------------------------

@discovery_bp.route("/sessions", methods=["POST"])
def create_session_route():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    missing = [f for f in ("account_id", "account_name", "vertical") if not data.get(f)]
    if missing:
        return api_error(
            E.VALIDATION_REQUIRED,
            f"{', '.join(missing)} required",
            details={f: "required" for f in missing},
        )
    user_id = data.get("user_id") or actor()
    return jsonify(discovery_service.create_session(data, user_id=user_id)), 201


@discovery_bp.route("/sessions/<int:sid>", methods=["GET"])
def get_session_route(sid):
    return jsonify(discovery_service.get_session(sid)), 200


@discovery_bp.route("/sessions/<int:sid>/status", methods=["PUT"])
def update_session_status_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    return jsonify(discovery_service.update_session_status(sid, data["status"], actor=actor())), 200


@discovery_bp.route("/accounts/<aid>/sessions", methods=["GET"])
def list_account_sessions_route(aid):
    sessions = discovery_service.list_sessions_by_account(aid)
    return jsonify({"sessions": sessions, "total": len(sessions)}), 200


@discovery_bp.route("/accounts/<aid>/active-session", methods=["GET"])
def active_session_route(aid):
    return jsonify({"session": discovery_service.get_active_session(aid)}), 200


# ------------------------------------------------------------------
#  Responses
# ------------------------------------------------------------------

@discovery_bp.route("/sessions/<int:sid>/responses", methods=["GET"])
def list_responses_route(sid):
    responses = discovery_service.list_responses(sid)
    return jsonify({"responses": responses, "total": len(responses)}), 200


@discovery_bp.route("/sessions/<int:sid>/responses", methods=["POST"])
def save_response_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("question_id"):
        return api_error(E.VALIDATION_REQUIRED, "question_id is required")
    return jsonify(discovery_service.save_response(sid, data, actor=actor())), 200


# ------------------------------------------------------------------
#  Notes
# ------------------------------------------------------------------

@discovery_bp.route("/sessions/<int:sid>/notes", methods=["GET"])
def list_notes_route(sid):
    notes = discovery_service.list_notes(sid)
    return jsonify({"notes": notes, "total": len(notes)}), 200


@discovery_bp.route("/sessions/<int:sid>/notes", methods=["POST"])
def add_note_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("note_text"):
        return api_error(E.VALIDATION_REQUIRED, "note_text is required")
    return jsonify(discovery_service.add_note(sid, data, actor=actor())), 201


@discovery_bp.route("/notes/<int:nid>", methods=["PUT"])
def update_note_route(nid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return jsonify(discovery_service.update_note(nid, data, actor=actor())), 200


@discovery_bp.route("/notes/<int:nid>", methods=["DELETE"])
def delete_note_route(nid):
    discovery_service.delete_note(nid, actor=actor())
    return jsonify({"deleted": True}), 200


# ------------------------------------------------------------------
#  Export / summary / report
# ------------------------------------------------------------------

@discovery_bp.route("/sessions/<int:sid>/export", methods=["POST"])
def export_session_route(sid):
    """Download the session as a file; ``format`` from the query or the body."""
    data = json_body() or {}
    fmt = request.args.get("format") or data.get("format") or "json"
    result = discovery_service.export_session(sid, fmt=str(fmt), actor=actor())
    return Response(
        result.payload,
        status=200,
        content_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@discovery_bp.route("/sessions/<int:sid>/summary", methods=["GET"])
def session_summary_route(sid):
    return jsonify(discovery_service.get_session_summary(sid)), 200


@discovery_bp.route("/sessions/<int:sid>/report", methods=["GET"])
def session_report_route(sid):
    view = request.args.get("view", "tree")
    return jsonify(discovery_service.get_session_report(sid, view=view)), 200
