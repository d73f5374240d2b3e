from typing import Optional, Tuple

import httpx
from pbi_embed.adapter_powerbi_rest import RetryPolicy, acquire_app_token
from pbi_embed.config import ProviderCredentials
from pbi_embed.infrastructure.token_cache import AppTokenCache


class ClientCredentialsTokenProvider:
    """App (service principal) access token for the Power BI REST API."""

    def __init__(self, client: httpx.AsyncClient, *, cache: Optional[AppTokenCache] = None, retry: Optional[RetryPolicy] = None):
        self.client = client
        self.cache = cache
        self.retry = retry

    @staticmethod
    def _key(credentials: ProviderCredentials) -> Tuple[str, str]:
        return (credentials.tenant_id, credentials.client_id)

    async def _fetch(self, credentials: ProviderCredentials) -> Tuple[str, float]:
        js = await acquire_app_token(self.client, credentials, retry=self.retry)
        return js["access_token"], js["expires_in"]

    async def get_token(self, credentials: ProviderCredentials) -> str:
        if self.cache is None:
            token, _ = await self._fetch(credentials)
            return token
        return await self.cache.get_or_acquire(self._key(credentials), lambda: self._fetch(credentials))

    def invalidate(self, credentials: ProviderCredentials) -> None:
        if self.cache is not None:
            self.cache.invalidate(self._key(credentials))
