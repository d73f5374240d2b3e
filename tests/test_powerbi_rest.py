from __future__ import annotations

import asyncio

import httpx
import pytest

from conftest import NO_WAIT, FakePowerBI
from pbi_embed import adapter_powerbi_rest as rest
from pbi_embed.config import ProviderCredentials
from pbi_embed.errors import ProviderAuthError, ReportLookupError, TokenGenerationError

CREDS = ProviderCredentials(tenant_id="tenant-1", client_id="client-1", client_secret="s3cret")


def _run(fake: FakePowerBI, call):
    async def go():
        async with httpx.AsyncClient(transport=fake.transport) as client:
            return await call(client)
    return asyncio.run(go())


def test_acquire_app_token(fake):
    js = _run(fake, lambda c: rest.acquire_app_token(c, CREDS, retry=NO_WAIT))

    assert js == {"access_token": "T1", "expires_in": 3599}


def test_retries_server_errors_then_succeeds(fake):
    fake.fail("token", httpx.Response(503, text="busy"), httpx.Response(500, text="oops"))

    js = _run(fake, lambda c: rest.acquire_app_token(c, CREDS, retry=NO_WAIT))

    assert js["access_token"] == "T1"
    assert fake.count("token") == 3


def test_retries_network_errors(fake):
    fake.fail("report", httpx.ConnectError("connection refused"))

    js = _run(fake, lambda c: rest.get_report(c, "T1", "ws-1", "rep-1", retry=NO_WAIT))

    assert js["embedUrl"] == "https://embed/rep-1"
    assert fake.count("report") == 2


def test_network_errors_exhaust_retries(fake):
    fake.fail("token", *[httpx.ConnectTimeout("timed out") for _ in range(3)])

    with pytest.raises(ProviderAuthError) as ei:
        _run(fake, lambda c: rest.acquire_app_token(c, CREDS, retry=NO_WAIT))

    assert ei.value.status == rest.NETWORK_ERROR_STATUS
    assert ei.value.code == "Network"
    assert fake.count("token") == 3


@pytest.mark.parametrize("status", [400, 401, 403, 404, 429])
def test_client_errors_are_not_retried(fake, status):
    fake.fail("report", httpx.Response(status, json={"error": {"code": "Nope", "message": "no"}}))

    with pytest.raises(ReportLookupError) as ei:
        _run(fake, lambda c: rest.get_report(c, "T1", "ws-1", "rep-1", retry=NO_WAIT))

    assert ei.value.status == status
    assert fake.count("report") == 1


def test_provider_error_body_is_kept_verbatim(fake):
    body = '{"error":"unauthorized_client","error_description":"AADSTS700016: Application not found"}'
    fake.fail("token", httpx.Response(400, text=body, headers={"content-type": "application/json"}))

    with pytest.raises(ProviderAuthError) as ei:
        _run(fake, lambda c: rest.acquire_app_token(c, CREDS, retry=NO_WAIT))

    assert ei.value.body == body
    assert ei.value.message == "AADSTS700016: Application not found"


def test_token_response_without_access_token(fake):
    fake.fail("token", httpx.Response(200, json={"token_type": "Bearer"}))

    with pytest.raises(ProviderAuthError):
        _run(fake, lambda c: rest.acquire_app_token(c, CREDS, retry=NO_WAIT))


def test_malformed_generate_token_response(fake):
    fake.fail("generate", httpx.Response(200, text="<html>gateway</html>"))

    with pytest.raises(TokenGenerationError) as ei:
        _run(fake, lambda c: rest.generate_report_token(c, "T1", "ws-1", "rep-1", retry=NO_WAIT))

    assert ei.value.code == "MalformedResponse"


def test_retry_after_header_is_honoured(fake, monkeypatch):
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr(rest.asyncio, "sleep", fake_sleep)
    fake.fail("generate", httpx.Response(503, headers={"Retry-After": "7"}))

    js = _run(fake, lambda c: rest.generate_report_token(c, "T1", "ws-1", "rep-1", retry=NO_WAIT))

    assert js["token"] == "embed-rep-1"
    assert waits == [7.0]


def test_backoff_grows_exponentially(fake, monkeypatch):
    waits = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr(rest.asyncio, "sleep", fake_sleep)
    fake.fail("token", httpx.Response(502), httpx.Response(502))

    _run(fake, lambda c: rest.acquire_app_token(c, CREDS, retry=rest.RetryPolicy(max_retries=2, backoff_initial=0.5, backoff_factor=2.0)))

    assert waits == [0.5, 1.0]


def test_parse_retry_after():
    assert rest._parse_retry_after("3") == 3.0
    assert rest._parse_retry_after("-1") == 0.0
    assert rest._parse_retry_after("not a date") == 0.0
    assert rest._parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0
