import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import List, Mapping, Optional
from dotenv import load_dotenv

# Load .env if present (host/dev convenience; docker-compose also injects env)
load_dotenv()

PLACEHOLDER_PREFIX = "your-"


def _get_env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}


def _get_env_list(key: str, default: List[str] | None = None) -> List[str]:
    raw = os.getenv(key)
    if raw is None:
        return default or []
    parts = [p.strip() for p in raw.split(",")]
    return [p for p in parts if p]


def _get_env_str(key: str) -> str:
    return (os.getenv(key) or "").strip()


@dataclass
class Config:
    # server
    server_name: str = os.getenv("SERVER_NAME", "Power BI Embed API")
    server_version: str = os.getenv("SERVER_VERSION", "0.1.0")
    env: str = os.getenv("ENV", "development")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    port: int = int(os.getenv("PORT", "4000"))

    # cors
    allow_origins: List[str] = field(default_factory=lambda: _get_env_list("ALLOW_ORIGINS", ["*"]))

    # http/client
    http_timeout: float = float(os.getenv("HTTP_TIMEOUT", "10"))
    http_max_retries: int = int(os.getenv("HTTP_MAX_RETRIES", "2"))
    http_backoff_initial: float = float(os.getenv("HTTP_BACKOFF_INITIAL", "0.5"))
    http_backoff_factor: float = float(os.getenv("HTTP_BACKOFF_FACTOR", "2.0"))

    # upstream endpoints
    authority_host: str = os.getenv("AUTHORITY_HOST", "https://login.microsoftonline.com")
    powerbi_api_base: str = os.getenv("POWERBI_API_BASE", "https://api.powerbi.com/v1.0/myorg")
    powerbi_scope: str = os.getenv("POWERBI_SCOPE", "https://analysis.windows.net/powerbi/api/.default")

    # app token cache
    token_refresh_skew_sec: int = int(os.getenv("TOKEN_REFRESH_SKEW_SEC", "300"))
    token_cache_enabled: bool = _get_env_bool("TOKEN_CACHE_ENABLED", True)

    # caller auth (demo JWTs)
    jwt_secret: str = os.getenv("JWT_SECRET", "dev-secret-change-me")
    jwt_algorithm: str = os.getenv("JWT_ALGORITHM", "HS256")
    jwt_expires_min: int = int(os.getenv("JWT_EXPIRES_MIN", "60"))


cfg = Config()


# ---------------------------------------------------------------------
# Power BI provider configuration (read once, passed explicitly)
# ---------------------------------------------------------------------
REPORT_ENV_KEYS = {
    "ExecutiveOverview": "POWERBI_REPORT_ID_EXEC_OVERVIEW",
    "SalesPerformance": "POWERBI_REPORT_ID_SALES_PERF",
    "GrowthForecast": "POWERBI_REPORT_ID_GROWTH",
    "DetailedAnalysis": "POWERBI_REPORT_ID_DETAILS",
}
DEFAULT_REPORT = "ExecutiveOverview"


@dataclass(frozen=True)
class ProviderCredentials:
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    def missing(self) -> List[str]:
        return [name for name in ("tenant_id", "client_id", "client_secret") if not getattr(self, name)]

    def __repr__(self) -> str:
        # never leak the secret through logs/tracebacks
        return f"ProviderCredentials(tenant_id={self.tenant_id!r}, client_id={self.client_id!r}, client_secret={'***' if self.client_secret else ''!r})"


@dataclass(frozen=True)
class ReportCatalog:
    """Logical report name -> Power BI report id.

    Unknown names, and names whose id is empty, resolve to the
    ExecutiveOverview entry.
    """
    entries: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def report_id_for(self, report_name: Optional[str]) -> str:
        return (self.entries.get(report_name) if report_name else "") or self.entries.get(DEFAULT_REPORT, "")


@dataclass(frozen=True)
class ProviderConfig:
    credentials: ProviderCredentials = field(default_factory=ProviderCredentials)
    workspace_id: str = ""
    catalog: ReportCatalog = field(default_factory=ReportCatalog)

    def workspace_configured(self) -> bool:
        return bool(self.workspace_id) and not self.workspace_id.startswith(PLACEHOLDER_PREFIX)


def is_placeholder(value: Optional[str]) -> bool:
    return not value or value.startswith(PLACEHOLDER_PREFIX)


def load_provider_config() -> ProviderConfig:
    """Build the immutable provider configuration from the environment."""
    creds = ProviderCredentials(
        tenant_id=_get_env_str("POWERBI_TENANT_ID"),
        client_id=_get_env_str("POWERBI_CLIENT_ID"),
        client_secret=_get_env_str("POWERBI_CLIENT_SECRET"),
    )
    catalog = ReportCatalog({name: _get_env_str(key) for name, key in REPORT_ENV_KEYS.items()})
    return ProviderConfig(credentials=creds, workspace_id=_get_env_str("POWERBI_WORKSPACE_ID"), catalog=catalog)
