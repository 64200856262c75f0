"""
One-directional CRM → pipeline import.

Records fetched from the CRM (or posted by a client) are mapped through a
``{column name: dotted source path}`` table and written one at a time
through ``row_service.create_row``. Each record is attempted independently:
a rejected record is reported and the batch carries on.
"""

import logging

from flask import current_app

from contrivance.core.exceptions import (
    CollaboratorUnavailableError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from contrivance.integrations.crm_gateway import CRMGateway
from contrivance.models import db
from contrivance.services import row_service, spreadsheet_service

logger = logging.getLogger(__name__)

DEFAULT_OPPORTUNITY_MAPPINGS = {
    "Name": "Name",
    "Opportunity Name": "Name",
    "Amount": "Amount",
    "Stage": "StageName",
    "Probability": "Probability",
    "Expected Revenue": "ExpectedRevenue",
    "Close Date": "CloseDate",
    "Account": "Account.Name",
    "Type": "Account.Type",
    "Owner": "Owner.Name",
    "Last Modified By": "LastModifiedBy.Name",
    "Created Date": "CreatedDate",
    "Last Modified Date": "LastModifiedDate",
}

DEFAULT_LEAD_MAPPINGS = {
    "Name": "Name",
    "Company": "Company",
    "Email": "Email",
    "Phone": "Phone",
    "Status": "Status",
    "Owner": "Owner.Name",
    "Created Date": "CreatedDate",
}

DEFAULT_ACCOUNT_MAPPINGS = {
    "Company Name": "Name",
    "Account Type": "Type",
    "Industry": "Industry",
    "Phone": "Phone",
    "Website": "Website",
    "City": "BillingCity",
    "State": "BillingState",
    "Country": "BillingCountry",
    "Created Date": "CreatedDate",
}

DEFAULT_MAPPINGS = {
    "opportunities": DEFAULT_OPPORTUNITY_MAPPINGS,
    "leads": DEFAULT_LEAD_MAPPINGS,
    "accounts": DEFAULT_ACCOUNT_MAPPINGS,
}

# Columns an opportunity pipeline is expected to carry, as (name, column_type)
CRM_OPPORTUNITY_COLUMNS = (
    ("Opportunity Name", "text"),
    ("Stage", "text"),
    ("Probability", "number"),
    ("Expected Revenue", "currency"),
    ("Close Date", "date"),
    ("Owner", "text"),
    ("Last Modified By", "text"),
    ("Last Modified Date", "date"),
)

# Mapping keys created as currency columns by create_pipeline_from_records
_CURRENCY_KEYS = ("amount", "revenue")


def resolve_path(record: dict, path: str):
    """Walk a dotted path (``"Account.Name"``); a missing hop yields None."""
    value = record
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def map_record(record: dict, field_mappings: dict) -> dict:
    """Build row data ``{column name: value}`` from one CRM record."""
    if not isinstance(record, dict):
        raise ValidationError("record must be an object", details={"record": "expected an object"})
    return {column: resolve_path(record, path) for column, path in field_mappings.items()}


def _resolve_mappings(field_mappings) -> dict:
    if field_mappings is None:
        return DEFAULT_OPPORTUNITY_MAPPINGS
    if isinstance(field_mappings, str):
        try:
            return DEFAULT_MAPPINGS[field_mappings]
        except KeyError:
            raise ValidationError(
                f"unknown mapping preset {field_mappings!r}",
                details={"field_mappings": f"one of {', '.join(DEFAULT_MAPPINGS)}"},
            )
    if not isinstance(field_mappings, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in field_mappings.items()
    ):
        raise ValidationError(
            "field_mappings must map column names to source paths",
            details={"field_mappings": "expected an object of strings"},
        )
    return field_mappings


def import_records(spreadsheet_id: int, records: list, field_mappings=None, actor: str | None = None) -> dict:
    """Map and create one row per record, collecting per-record failures.

    Args:
        spreadsheet_id: Target pipeline.
        records: CRM records (dicts).
        field_mappings: Mapping dict, a preset name ("opportunities", "leads",
                        "accounts") or None for the opportunity preset.
        actor: Acting user for created rows.

    Returns:
        ``{created, failed, created_row_ids, errors: [{index, record_id, error}]}``

    Raises:
        NotFoundError: unknown spreadsheet (checked before any record).
        StorageUnavailableError: the store went away mid-batch.
    """
    spreadsheet_service.get_spreadsheet_model(spreadsheet_id)
    mappings = _resolve_mappings(field_mappings)
    if not isinstance(records, list):
        raise ValidationError("records must be a list", details={"records": "expected a list"})

    created_ids: list[int] = []
    errors: list[dict] = []
    for index, record in enumerate(records):
        record_id = record.get("Id") if isinstance(record, dict) else None
        try:
            row = row_service.create_row(spreadsheet_id, map_record(record, mappings), actor)
        except (ValidationError, ConflictError, NotFoundError) as exc:
            db.session.rollback()
            errors.append({"index": index, "record_id": record_id, "error": str(exc)})
            logger.info("CRM record rejected index=%d id=%s: %s", index, record_id, exc)
            continue
        created_ids.append(row["id"])

    logger.info(
        "CRM import spreadsheet=%s created=%d failed=%d",
        spreadsheet_id, len(created_ids), len(errors),
    )
    return {
        "created": len(created_ids),
        "failed": len(errors),
        "created_row_ids": created_ids,
        "errors": errors,
    }


def create_pipeline_from_records(
    name: str,
    records: list,
    field_mappings=None,
    owner_id: str | None = None,
) -> dict:
    """Create a spreadsheet with one column per mapping key, then import.

    Amount/revenue-like keys become currency columns; everything else is text.

    Returns:
        ``{"spreadsheet": {...}, "import": {...}}``
    """
    mappings = _resolve_mappings(field_mappings)
    columns = []
    for column_name in mappings:
        lowered = column_name.lower()
        column_type = "currency" if any(k in lowered for k in _CURRENCY_KEYS) else "text"
        columns.append({"name": column_name, "column_type": column_type})

    sheet = spreadsheet_service.create_spreadsheet({"name": name, "columns": columns}, owner_id)
    summary = import_records(sheet["id"], records, mappings, owner_id)
    return {"spreadsheet": sheet, "import": summary}


def ensure_crm_columns(spreadsheet_id: int, columns=None, actor: str | None = None) -> dict:
    """Append the CRM opportunity columns a spreadsheet is missing.

    Names already present are left alone whatever their type; missing ones
    go to the end in ``CRM_OPPORTUNITY_COLUMNS`` order.

    Returns:
        ``{"added_columns": [column dicts], "total_columns": int}``

    Raises:
        NotFoundError: unknown spreadsheet.
    """
    spreadsheet_service.get_spreadsheet_model(spreadsheet_id)
    existing = {c["name"] for c in spreadsheet_service.list_columns(spreadsheet_id)}
    added = []
    for name, column_type in columns or CRM_OPPORTUNITY_COLUMNS:
        if name in existing:
            continue
        added.append(spreadsheet_service.define_column(
            spreadsheet_id, {"name": name, "column_type": column_type}, actor=actor,
        ))
        existing.add(name)

    if added:
        logger.info("Added %d CRM columns to spreadsheet=%s", len(added), spreadsheet_id)
    else:
        logger.info("All CRM columns already exist for spreadsheet=%s", spreadsheet_id)
    return {"added_columns": added, "total_columns": len(existing)}


def sync_opportunities(spreadsheet_id: int, gateway, field_mappings=None, actor: str | None = None, limit: int = 200) -> dict:
    """Pull opportunities from the CRM gateway and import them.

    The spreadsheet gets any missing CRM columns first so imported values are
    coerced against a definition. The summary carries their names under
    ``added_columns``.

    Raises:
        CollaboratorUnavailableError: gateway not configured or the call failed.
    """
    spreadsheet_service.get_spreadsheet_model(spreadsheet_id)
    result = gateway.query_opportunities(limit=limit)
    if not result.ok:
        logger.warning("CRM opportunity sync failed spreadsheet=%s: %s", spreadsheet_id, result.error)
        raise CollaboratorUnavailableError("crm", result.error or "opportunity query failed")
    records = (result.data or {}).get("records") or []
    ensured = ensure_crm_columns(spreadsheet_id, actor=actor)
    summary = import_records(spreadsheet_id, records, field_mappings, actor)
    summary["added_columns"] = [c["name"] for c in ensured["added_columns"]]
    return summary


def list_accounts(gateway, limit: int = 200) -> list[dict]:
    """Account lookup for the discovery screens: ``[{id, name, type, industry}]``."""
    result = gateway.list_accounts(limit=limit)
    if not result.ok:
        raise CollaboratorUnavailableError("crm", result.error or "account query failed")
    return [
        {
            "id": r.get("Id"),
            "name": r.get("Name"),
            "type": r.get("Type"),
            "industry": r.get("Industry"),
        }
        for r in (result.data or {}).get("records") or []
    ]


def gateway_from_config(config=None) -> CRMGateway:
    """Build a CRMGateway from explicit app configuration values.

    Raises:
        CollaboratorUnavailableError: instance URL or access token missing.
    """
    config = config if config is not None else current_app.config
    gateway = CRMGateway(
        instance_url=config.get("CRM_INSTANCE_URL", ""),
        access_token=config.get("CRM_ACCESS_TOKEN", ""),
        api_version=config.get("CRM_API_VERSION", "v59.0"),
    )
    if not gateway.is_configured:
        raise CollaboratorUnavailableError("crm", "CRM_INSTANCE_URL and CRM_ACCESS_TOKEN must be set")
    return gateway
