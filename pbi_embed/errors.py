from __future__ import annotations
from typing import Optional


class EmbedError(Exception):
    """Upstream failure while producing an embed configuration.

    ``status`` is the upstream HTTP status (503 for network-level failures),
    ``body`` the raw upstream response text kept for diagnostics.
    """
    kind = "EmbedError"
    summary = "Failed to generate Power BI embed configuration"

    def __init__(self, status: int, code: str, message: str, *, body: Optional[str] = None):
        super().__init__(f"{status}:{code}:{message}")
        self.status = status
        self.code = code
        self.message = message
        self.body = body

    @property
    def http_status(self) -> int:
        return 502

    def public_message(self) -> str:
        return f"{self.summary}: {self.message}" if self.message else self.summary


class ProviderAuthError(EmbedError):
    kind = "ProviderAuthError"
    summary = "Failed to acquire Power BI access token"


class ReportLookupError(EmbedError):
    kind = "ReportLookupError"
    summary = "Failed to look up Power BI report"

    @property
    def http_status(self) -> int:
        if self.status == 403:
            return 403
        # 401 means our app token was rejected, not that the report is missing
        if self.status == 401 or self.status >= 500 or self.status < 400:
            return 502
        return 404


class TokenGenerationError(EmbedError):
    kind = "TokenGenerationError"
    summary = "Failed to generate Power BI embed token"
