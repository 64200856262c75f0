"""
CRM → pipeline import.

Blueprint: import_bp
Prefix: /api/v1

Endpoints:
    POST /spreadsheets/<sid>/import      -- Import records posted in the body
    POST /spreadsheets/<sid>/crm-columns -- Append any missing CRM opportunity columns
    POST /spreadsheets/<sid>/crm-sync    -- Pull opportunities from the CRM and import
    POST /crm/pipelines                  -- New spreadsheet built from records + mappings
    GET  /crm/accounts                   -- Account lookup for discovery

Body fields:
    records         list of CRM record objects (import, pipelines)
    field_mappings  {column: dotted path} or a preset name
                    ("opportunities", "leads", "accounts")
"""

import logging

from flask import Blueprint, jsonify

from contrivance.blueprints import actor, json_body, pagination_args
from contrivance.services import crm_import_service
from contrivance.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

import_bp = Blueprint("crm_import", __name__, url_prefix="/api/v1")
register_error_handlers(import_bp)


@import_bp.route("/spreadsheets/<int:sid>/import", methods=["POST"])
def import_records_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    records = data.get("records")
    if not isinstance(records, list):
        return api_error(E.VALIDATION_REQUIRED, "records list is required")
    summary = crm_import_service.import_records(
        sid, records, field_mappings=data.get("field_mappings"), actor=actor(),
    )
    return jsonify(summary), 200


@import_bp.route("/spreadsheets/<int:sid>/crm-sync", methods=["POST"])
def crm_sync_route(sid):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    limit, _ = pagination_args(default_limit=200, max_limit=2000)
    gateway = crm_import_service.gateway_from_config()
    summary = crm_import_service.sync_opportunities(
        sid, gateway, field_mappings=data.get("field_mappings"), actor=actor(), limit=limit,
    )
    return jsonify(summary), 200


@import_bp.route("/spreadsheets/<int:sid>/crm-columns", methods=["POST"])
def crm_columns_route(sid):
    result = crm_import_service.ensure_crm_columns(sid, actor=actor())
    return jsonify(result), 200


@import_bp.route("/crm/pipelines", methods=["POST"])
def create_pipeline_route():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object")
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    records = data.get("records") or []
    if not isinstance(records, list):
        return api_error(E.VALIDATION_INVALID, "records must be a list")
    result = crm_import_service.create_pipeline_from_records(
        data["name"], records, field_mappings=data.get("field_mappings"), owner_id=actor(),
    )
    return jsonify(result), 201


@import_bp.route("/crm/accounts", methods=["GET"])
def list_crm_accounts_route():
    limit, _ = pagination_args(default_limit=200, max_limit=2000)
    gateway = crm_import_service.gateway_from_config()
    accounts = crm_import_service.list_accounts(gateway, limit=limit)
    return jsonify({"accounts": accounts, "total": len(accounts)}), 200
