# adapter_powerbi_rest.py
# - Identity provider (client-credentials) and Power BI REST integration adapter
# - Async REST calls with bounded retry/backoff and standardized error translation

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Type

import httpx
from pbi_embed.config import cfg, ProviderCredentials
from pbi_embed.errors import EmbedError, ProviderAuthError, ReportLookupError, TokenGenerationError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (500, 502, 503, 504)
NETWORK_ERROR_STATUS = 503


def _headers(token: str) -> Dict[str, str]:
    """Return headers for Power BI REST call"""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
    }


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for network errors and 5xx. 4xx never retry."""
    max_retries: int = cfg.http_max_retries
    backoff_initial: float = cfg.http_backoff_initial
    backoff_factor: float = cfg.http_backoff_factor


DEFAULT_RETRY = RetryPolicy()


# -----------------------------
# HTTP Wrapper
# -----------------------------
def _parse_retry_after(val: str) -> float:
    """Parse Retry-After header (seconds or HTTP-date). Return seconds to sleep (>=0)."""
    try:
        return max(0.0, float(val))
    except ValueError:
        pass
    try:
        from email.utils import parsedate_to_datetime
        dt = parsedate_to_datetime(val)
        return max(0.0, (dt - datetime.now(timezone.utc)).total_seconds())
    except (TypeError, ValueError):
        return 0.0


def _error_details(r: httpx.Response) -> tuple[str, str]:
    """Extract (code, message) from an AAD or Power BI error body."""
    try:
        js = r.json()
    except ValueError:
        return "Error", r.text
    if not isinstance(js, dict):
        return "Error", r.text
    err = js.get("error")
    # AAD: {"error": "invalid_client", "error_description": "..."}
    if isinstance(err, str):
        return err, js.get("error_description") or r.text
    # Power BI: {"error": {"code": "...", "message": "..."}}
    if isinstance(err, dict):
        return err.get("code") or "Error", err.get("message") or r.text
    return "Error", r.text


async def _request(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    error_cls: Type[EmbedError],
    retry: Optional[RetryPolicy] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """Single outbound call with 5xx/network backoff and error translation.
    - Honors Retry-After header when present
    - Raises ``error_cls`` on final failure or a non-JSON success body
    """
    policy = retry or DEFAULT_RETRY
    backoff = policy.backoff_initial

    for attempt in range(policy.max_retries + 1):
        try:
            r = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if attempt < policy.max_retries:
                logger.warning("%s %s failed (%s), retrying in %.2fs", method, url, e.__class__.__name__, backoff)
                await asyncio.sleep(backoff)
                backoff *= policy.backoff_factor
                continue
            raise error_cls(NETWORK_ERROR_STATUS, "Network", str(e) or e.__class__.__name__) from e

        if r.status_code < 400:
            try:
                return r.json() if r.content else {}
            except ValueError:
                raise error_cls(r.status_code, "MalformedResponse", "upstream returned a non-JSON body", body=r.text)

        code, msg = _error_details(r)

        if r.status_code in RETRYABLE_STATUS and attempt < policy.max_retries:
            ra = r.headers.get("Retry-After")
            wait = _parse_retry_after(ra) if ra else backoff
            logger.warning("%s %s returned %s, retrying in %.2fs", method, url, r.status_code, wait)
            await asyncio.sleep(max(0.0, wait))
            backoff *= policy.backoff_factor
            continue

        logger.error("%s %s failed: %s %s %s", method, url, r.status_code, code, r.text)
        raise error_cls(r.status_code, code, msg, body=r.text)

    # unreachable: the loop either returns or raises
    raise error_cls(NETWORK_ERROR_STATUS, "Network", "retries exhausted")


# -----------------------------
# Identity provider
# -----------------------------
def token_endpoint(tenant_id: str) -> str:
    return f"{cfg.authority_host.rstrip('/')}/{tenant_id}/oauth2/v2.0/token"


async def acquire_app_token(
    client: httpx.AsyncClient,
    credentials: ProviderCredentials,
    *,
    retry: Optional[RetryPolicy] = None,
) -> Dict[str, Any]:
    """Client-credentials grant. Returns {"access_token", "expires_in"}."""
    data = {
        "grant_type": "client_credentials",
        "client_id": credentials.client_id,
        "client_secret": credentials.client_secret,
        "scope": cfg.powerbi_scope,
    }
    js = await _request(
        client,
        "POST",
        token_endpoint(credentials.tenant_id),
        error_cls=ProviderAuthError,
        retry=retry,
        data=data,
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    access_token = js.get("access_token") if isinstance(js, dict) else None
    if not access_token:
        raise ProviderAuthError(200, "MalformedResponse", "token response has no access_token", body=str(js))
    try:
        expires_in = int(js.get("expires_in") or 3599)
    except (TypeError, ValueError):
        expires_in = 3599
    return {"access_token": access_token, "expires_in": expires_in}


# -----------------------------
# Power BI reports
# -----------------------------
def report_url(workspace_id: str, report_id: str) -> str:
    return f"{cfg.powerbi_api_base.rstrip('/')}/groups/{workspace_id}/reports/{report_id}"


async def get_report(
    client: httpx.AsyncClient,
    token: str,
    workspace_id: str,
    report_id: str,
    *,
    retry: Optional[RetryPolicy] = None,
) -> Dict[str, Any]:
    js = await _request(
        client,
        "GET",
        report_url(workspace_id, report_id),
        error_cls=ReportLookupError,
        retry=retry,
        headers=_headers(token),
    )
    if not isinstance(js, dict) or not js.get("embedUrl"):
        raise ReportLookupError(200, "MalformedResponse", "report has no embedUrl", body=str(js))
    return js


async def generate_report_token(
    client: httpx.AsyncClient,
    token: str,
    workspace_id: str,
    report_id: str,
    *,
    access_level: str = "View",
    retry: Optional[RetryPolicy] = None,
) -> Dict[str, Any]:
    """POST .../GenerateToken. Returns {"token", "tokenId", "expiration"}."""
    body = {"accessLevel": access_level}
    js = await _request(
        client,
        "POST",
        f"{report_url(workspace_id, report_id)}/GenerateToken",
        error_cls=TokenGenerationError,
        retry=retry,
        json=body,
        headers=_headers(token),
    )
    if not isinstance(js, dict) or not js.get("token"):
        raise TokenGenerationError(200, "MalformedResponse", "GenerateToken response has no token", body=str(js))
    return js
