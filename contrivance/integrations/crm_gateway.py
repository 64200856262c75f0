"""
CRM (Salesforce REST) gateway.

All outbound HTTP calls to the CRM go through this class; services never
call ``requests`` directly.

  - Bearer access token supplied at construction (no ambient credentials)
  - Retry: max 2 extra attempts on network errors, 429 and 5xx, backoff 1 s → 4 s
  - Timeout: 30 s per call
  - SOQL queries follow ``nextRecordsUrl`` until ``done``
  - Structured GatewayResult returned to the caller; never raises

Testability: pass a fake ``session`` (and a no-op ``sleep``) to CRMGateway()
in tests instead of letting it create a real requests.Session.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

import requests

logger = logging.getLogger(__name__)

# ── Retry constants ────────────────────────────────────────────────────────
_RETRY_MAX = 2
_RETRY_BACKOFF_SECONDS = [1, 4]    # sleep[0] after 1st fail, sleep[1] after 2nd

_DEFAULT_TIMEOUT = 30

# Safety stop for runaway pagination
_MAX_PAGES = 50

OPPORTUNITY_FIELDS = (
    "Id", "Name", "Amount", "StageName", "Probability", "ExpectedRevenue",
    "CloseDate", "CreatedDate", "LastModifiedDate",
    "Account.Id", "Account.Name", "Account.Type",
    "Owner.Id", "Owner.Name", "Owner.Email", "LastModifiedBy.Name",
)
LEAD_FIELDS = (
    "Id", "Name", "Company", "Email", "Phone", "Status", "CreatedDate",
    "Owner.Id", "Owner.Name", "Owner.Email",
)
ACCOUNT_FIELDS = (
    "Id", "Name", "Type", "Industry", "Phone", "Website",
    "BillingCity", "BillingState", "BillingCountry", "CreatedDate",
)


class GatewayResult:
    """Structured return value from CRMGateway calls.

    Attributes:
        ok:          True if the call succeeded (HTTP 2xx + no exception).
        status_code: HTTP status code (None if network-level failure).
        data:        Parsed JSON body (dict or list), else None.
        error:       Human-readable error message or None.
        duration_ms: Round-trip latency in milliseconds.
    """

    def __init__(
        self,
        ok: bool,
        status_code: int | None,
        data: dict | list | None,
        error: str | None,
        duration_ms: int,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms

    def __repr__(self):
        return f"<GatewayResult ok={self.ok} status={self.status_code} error={self.error!r}>"


class CRMGateway:
    """Salesforce-style REST API client.

    Usage:
        gateway = CRMGateway(instance_url, access_token)
        result = gateway.query_opportunities(limit=100)
        if result.ok:
            records = result.data["records"]
    """

    def __init__(
        self,
        instance_url: str,
        access_token: str,
        api_version: str = "v59.0",
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.instance_url = (instance_url or "").rstrip("/")
        self.access_token = access_token or ""
        self.api_version = api_version
        self._session: requests.Session | None = session
        self._sleep = sleep

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def is_configured(self) -> bool:
        return bool(self.instance_url and self.access_token)

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        if not path.startswith("/"):
            path = f"/services/data/{self.api_version}/{path}"
        return f"{self.instance_url}{path}"

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json_body: dict | list | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
    ) -> GatewayResult:
        """Execute an authenticated request with retries.

        *path* is either an absolute URL, a server-relative path
        (``/services/data/...``, as returned in ``nextRecordsUrl``) or a
        path relative to the versioned data API (``query``).

        Returns:
            GatewayResult; callers check ``.ok``.
        """
        if not self.is_configured:
            return GatewayResult(False, None, None, "CRM instance URL or access token not configured", 0)

        url = self._url(path)
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
        }
        kwargs: dict[str, Any] = {"headers": headers, "timeout": timeout}
        if params:
            kwargs["params"] = params
        if json_body is not None:
            kwargs["json"] = json_body

        last_error = "Unknown error"
        last_status: int | None = None
        for attempt in range(_RETRY_MAX + 1):
            t0 = time.perf_counter()
            try:
                resp = self.session.request(method, url, **kwargs)
                duration_ms = int((time.perf_counter() - t0) * 1000)
                last_status = resp.status_code

                if resp.ok:
                    try:
                        data = resp.json() if resp.content else {}
                    except ValueError:
                        data = {}
                    return GatewayResult(True, resp.status_code, data, None, duration_ms)

                last_error = f"HTTP {resp.status_code}: {resp.text[:500]}"
                logger.warning(
                    "CRM request failed attempt=%d/%d status=%d url=%s",
                    attempt + 1, _RETRY_MAX + 1, resp.status_code, url,
                )
                # Client errors other than throttling will not improve on retry
                if resp.status_code < 500 and resp.status_code != 429:
                    return GatewayResult(False, resp.status_code, None, last_error, duration_ms)

            except requests.Timeout:
                last_error = f"Request timed out after {timeout}s"
                logger.warning("CRM request timed out attempt=%d/%d url=%s", attempt + 1, _RETRY_MAX + 1, url)

            except requests.RequestException as exc:
                last_error = str(exc)[:500]
                logger.warning(
                    "CRM network error attempt=%d/%d url=%s error=%s",
                    attempt + 1, _RETRY_MAX + 1, url, last_error,
                )

            if attempt < _RETRY_MAX:
                sleep_s = _RETRY_BACKOFF_SECONDS[min(attempt, len(_RETRY_BACKOFF_SECONDS) - 1)]
                logger.info("Retrying CRM request in %ss (attempt %d)", sleep_s, attempt + 2)
                self._sleep(sleep_s)

        t_total = sum(_RETRY_BACKOFF_SECONDS[:_RETRY_MAX]) * 1000
        return GatewayResult(False, last_status, None, last_error, t_total)

    # ── CRM operations ────────────────────────────────────────────────────────

    def query(self, soql: str) -> GatewayResult:
        """Run a SOQL query, following ``nextRecordsUrl`` across pages.

        Returns:
            GatewayResult whose data is ``{"records": [...], "totalSize": n}``.
        """
        result = self.request("GET", "query", params={"q": soql})
        if not result.ok:
            return result

        body = result.data or {}
        records = list(body.get("records") or [])
        duration_ms = result.duration_ms
        pages = 1
        while not body.get("done", True) and body.get("nextRecordsUrl") and pages < _MAX_PAGES:
            page = self.request("GET", body["nextRecordsUrl"])
            if not page.ok:
                return page
            body = page.data or {}
            records.extend(body.get("records") or [])
            duration_ms += page.duration_ms
            pages += 1

        logger.info("CRM query returned %d records in %d page(s)", len(records), pages)
        return GatewayResult(
            True,
            result.status_code,
            {"records": records, "totalSize": body.get("totalSize", len(records))},
            None,
            duration_ms,
        )

    @staticmethod
    def _soql(fields, sobject: str, where: str | None, order_by: str | None, limit: int | None) -> str:
        soql = f"SELECT {', '.join(fields)} FROM {sobject}"
        if where:
            soql += f" WHERE {where}"
        if order_by:
            soql += f" ORDER BY {order_by}"
        if limit:
            soql += f" LIMIT {int(limit)}"
        return soql

    def list_accounts(self, limit: int | None = 200) -> GatewayResult:
        return self.query(self._soql(ACCOUNT_FIELDS, "Account", None, "Name", limit))

    def query_opportunities(self, limit: int | None = 200) -> GatewayResult:
        return self.query(self._soql(OPPORTUNITY_FIELDS, "Opportunity", "IsDeleted = false", None, limit))

    def query_leads(self, limit: int | None = 200) -> GatewayResult:
        return self.query(self._soql(LEAD_FIELDS, "Lead", "IsDeleted = false", None, limit))
