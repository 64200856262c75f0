"""
Task ledger: pipeline-level and row-bound todos.

Blueprint: todo_bp
Prefix: /api/v1

Endpoints:
    POST           /todos                                  -- Create
    GET/PUT/DELETE /todos/<tid>                            -- Single todo CRUD
    PUT            /todos/<tid>/complete                   -- Mark done
    PUT            /todos/<tid>/uncomplete                 -- Mark not done
    POST           /todos/<tid>/toggle                     -- Flip completion
    GET            /spreadsheets/<sid>/todos?scope=        -- pipeline | all
    GET            /spreadsheets/<sid>/todos/stats         -- Counts by state/priority
    GET            /spreadsheets/<sid>/rows/<rid>/todos    -- Todos of one row
    GET            /rows/<rid>/todo-stats                  -- Row completion stats

Mutations on a bound todo answer with ``row_stats``: the row's re-derived
completion picture after the todo commit.
"""

import logging

from flask import Blueprint, jsonify, request

from contrivance.blueprints import actor, json_body
from contrivance.services import todo_service
from contrivance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

todo_bp = Blueprint("todo", __name__, url_prefix="/api/v1")
register_error_handlers(todo_bp)


@todo_bp.route("/todos", methods=["POST"])
def create_todo_route():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("title"):
        return api_error(E.VALIDATION_REQUIRED, "title is required")
    if data.get("spreadsheet_id") is None:
        return api_error(E.VALIDATION_REQUIRED, "spreadsheet_id is required")
    result = todo_service.create_todo(data, user_id=actor())
    return jsonify(result), 201


@todo_bp.route("/todos/<int:tid>", methods=["GET"])
def get_todo_route(tid):
    return jsonify(todo_service.get_todo(tid)), 200


@todo_bp.route("/todos/<int:tid>", methods=["PUT"])
def update_todo_route(tid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    return jsonify(todo_service.update_todo(tid, data, actor=actor())), 200


@todo_bp.route("/todos/<int:tid>", methods=["DELETE"])
def delete_todo_route(tid):
    return jsonify(todo_service.delete_todo(tid, actor=actor())), 200


@todo_bp.route("/todos/<int:tid>/complete", methods=["PUT"])
def complete_todo_route(tid):
    return jsonify(todo_service.set_todo_completion(tid, True, actor=actor())), 200


@todo_bp.route("/todos/<int:tid>/uncomplete", methods=["PUT"])
def uncomplete_todo_route(tid):
    return jsonify(todo_service.set_todo_completion(tid, False, actor=actor())), 200


@todo_bp.route("/todos/<int:tid>/toggle", methods=["POST"])
def toggle_todo_route(tid):
    return jsonify(todo_service.toggle_todo(tid, actor=actor())), 200


@todo_bp.route("/spreadsheets/<int:sid>/todos", methods=["GET"])
def list_spreadsheet_todos_route(sid):
    scope = request.args.get("scope", "pipeline")
    todos = todo_service.list_todos_by_spreadsheet(sid, scope=scope)
    return jsonify({"todos": todos, "total": len(todos), "scope": scope}), 200


@todo_bp.route("/spreadsheets/<int:sid>/todos/stats", methods=["GET"])
def spreadsheet_todo_stats_route(sid):
    return jsonify(todo_service.get_todo_stats(sid)), 200


@todo_bp.route("/spreadsheets/<int:sid>/rows/<int:rid>/todos", methods=["GET"])
def list_row_todos_route(sid, rid):
    todos = todo_service.list_todos_by_row(sid, rid)
    return jsonify({"todos": todos, "total": len(todos)}), 200


@todo_bp.route("/rows/<int:rid>/todo-stats", methods=["GET"])
def row_todo_stats_route(rid):
    return jsonify(todo_service.get_row_todo_stats(rid)), 200
