"""Shared fixtures: provider configs and a call-counting fake identity provider / Power BI API."""
from __future__ import annotations

from typing import Dict, List, Optional, Tuple, Union

import httpx
import pytest

from pbi_embed.adapter_powerbi_rest import RetryPolicy
from pbi_embed.config import ProviderConfig, ProviderCredentials, ReportCatalog
from pbi_embed.container import get_token_cache

NO_WAIT = RetryPolicy(max_retries=2, backoff_initial=0.0, backoff_factor=1.0)

REPORT_IDS = {
    "ExecutiveOverview": "rep-exec",
    "SalesPerformance": "rep-sales",
    "GrowthForecast": "rep-growth",
    "DetailedAnalysis": "rep-details",
}

Override = Union[httpx.Response, Exception]


class FakePowerBI:
    """Routes requests to the token, report and GenerateToken endpoints and counts them."""

    def __init__(self, access_token: str = "T1", embed_url: Optional[str] = None, embed_token: Optional[str] = None):
        self.access_token = access_token
        self.embed_url = embed_url
        self.embed_token = embed_token
        self.calls: List[Tuple[str, httpx.Request]] = []
        self.overrides: Dict[str, List[Override]] = {"token": [], "report": [], "generate": []}

    @staticmethod
    def _kind(request: httpx.Request) -> str:
        path = request.url.path
        if path.endswith("/oauth2/v2.0/token"):
            return "token"
        if path.endswith("/GenerateToken"):
            return "generate"
        if "/reports/" in path:
            return "report"
        raise AssertionError(f"unexpected request {request.method} {request.url}")

    @staticmethod
    def _report_id(request: httpx.Request) -> str:
        parts = request.url.path.split("/")
        return parts[parts.index("reports") + 1]

    def fail(self, kind: str, *responses: Override) -> None:
        self.overrides[kind].extend(responses)

    def count(self, kind: Optional[str] = None) -> int:
        return len([c for c in self.calls if kind is None or c[0] == kind])

    def requests(self, kind: str) -> List[httpx.Request]:
        return [r for k, r in self.calls if k == kind]

    def handler(self, request: httpx.Request) -> httpx.Response:
        kind = self._kind(request)
        self.calls.append((kind, request))
        if self.overrides[kind]:
            nxt = self.overrides[kind].pop(0)
            if isinstance(nxt, Exception):
                raise nxt
            return nxt
        if kind == "token":
            return httpx.Response(200, json={"token_type": "Bearer", "expires_in": 3599, "access_token": self.access_token})
        report_id = self._report_id(request)
        if kind == "report":
            return httpx.Response(200, json={"id": report_id, "embedUrl": self.embed_url or f"https://embed/{report_id}"})
        return httpx.Response(200, json={"token": self.embed_token or f"embed-{report_id}", "tokenId": "tid", "expiration": "2030-01-01T00:00:00Z"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def make_provider(
    *,
    tenant_id: str = "tenant-1",
    client_id: str = "client-1",
    client_secret: str = "s3cret",
    workspace_id: str = "ws-1",
    reports: Optional[Dict[str, str]] = None,
) -> ProviderConfig:
    return ProviderConfig(
        credentials=ProviderCredentials(tenant_id=tenant_id, client_id=client_id, client_secret=client_secret),
        workspace_id=workspace_id,
        catalog=ReportCatalog(REPORT_IDS if reports is None else reports),
    )


@pytest.fixture
def fake() -> FakePowerBI:
    return FakePowerBI()


@pytest.fixture
def provider() -> ProviderConfig:
    return make_provider()


@pytest.fixture(autouse=True)
def _clear_token_cache():
    get_token_cache().clear()
    yield
    get_token_cache().clear()
