import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import pbi_embed.adapter_powerbi_rest as rest
from pbi_embed.adapter_powerbi_rest import RetryPolicy
from pbi_embed.config import ProviderConfig, ProviderCredentials, is_placeholder
from pbi_embed.errors import EmbedError, ProviderAuthError
from pbi_embed.infrastructure.token_provider import ClientCredentialsTokenProvider
from pbi_embed.schemas.embed import CallerIdentity, DemoEmbedConfig, EmbedConfiguration, LiveEmbedConfig

logger = logging.getLogger(__name__)

DEMO_MESSAGE = (
    "Power BI embedding is not configured in this environment. The UI, navigation, and page layout "
    "are fully functional; reports will render once workspace, report IDs, and app credentials are "
    "provided in the environment (.env)."
)


@dataclass(frozen=True)
class EmbedTokenResult:
    embed_url: str
    embed_token: str


class TokenBroker:
    """App token -> report metadata + embed token.

    The report lookup and GenerateToken calls run concurrently once the app
    token is available; if either fails the other is cancelled and nothing
    is returned.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        token_provider: Optional[ClientCredentialsTokenProvider] = None,
        retry: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.retry = retry
        self.tokens = token_provider or ClientCredentialsTokenProvider(client, retry=retry)

    async def fetch_embed_config(self, workspace_id: str, report_id: str, credentials: ProviderCredentials) -> EmbedTokenResult:
        if not credentials.complete:
            raise ProviderAuthError(0, "MissingCredentials", "Power BI app credentials are not configured")

        access_token = await self.tokens.get_token(credentials)

        tasks = [
            asyncio.ensure_future(rest.get_report(self.client, access_token, workspace_id, report_id, retry=self.retry)),
            asyncio.ensure_future(rest.generate_report_token(self.client, access_token, workspace_id, report_id, retry=self.retry)),
        ]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for t in tasks:
                if not t.done():
                    t.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        failures = [r for r in results if isinstance(r, Exception)]
        if failures:
            if any(isinstance(e, EmbedError) and e.status == 401 for e in failures):
                # cached app token was rejected; force a fresh one next time
                self.tokens.invalidate(credentials)
            raise failures[0]
        report, generated = results
        return EmbedTokenResult(embed_url=report["embedUrl"], embed_token=generated["token"])


class EmbedConfigResolver:
    def __init__(self, provider: ProviderConfig, broker: TokenBroker):
        self.provider = provider
        self.broker = broker

    def is_configured(self, report_id: str) -> bool:
        if is_placeholder(self.provider.workspace_id) or is_placeholder(report_id):
            return False
        return self.provider.credentials.complete

    async def resolve(self, report_name: str, caller: CallerIdentity) -> EmbedConfiguration:
        report_id = self.provider.catalog.report_id_for(report_name)

        if not self.is_configured(report_id):
            logger.info("embed config for %s: demo mode (configuration incomplete)", report_name)
            return DemoEmbedConfig(reportName=report_name, message=DEMO_MESSAGE)

        result = await self.broker.fetch_embed_config(self.provider.workspace_id, report_id, self.provider.credentials)
        logger.info("embed config for %s issued to %s", report_name, caller.id)
        return LiveEmbedConfig(
            reportName=report_name,
            embedUrl=result.embed_url,
            reportId=report_id,
            accessToken=result.embed_token,
            userRole=caller.role,
        )
