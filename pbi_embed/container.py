"""
Very small composition root (DI container) that wires the broker/resolver
from environment-driven config.
"""
from functools import lru_cache
from typing import Optional

import httpx
from pbi_embed.adapter_powerbi_rest import RetryPolicy
from pbi_embed.config import cfg, ProviderConfig, load_provider_config
from pbi_embed.infrastructure.token_cache import AppTokenCache
from pbi_embed.infrastructure.token_provider import ClientCredentialsTokenProvider
from pbi_embed.usecases.embed_service import EmbedConfigResolver, TokenBroker


@lru_cache(maxsize=1)
def get_token_cache() -> AppTokenCache:
    return AppTokenCache(skew_sec=cfg.token_refresh_skew_sec)


def new_http_client(**kwargs) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=cfg.http_timeout, **kwargs)


def build_resolver(
    client: httpx.AsyncClient,
    provider: Optional[ProviderConfig] = None,
    *,
    cache: Optional[AppTokenCache] = None,
    retry: Optional[RetryPolicy] = None,
) -> EmbedConfigResolver:
    if cache is None and cfg.token_cache_enabled:
        cache = get_token_cache()
    tokens = ClientCredentialsTokenProvider(client, cache=cache, retry=retry)
    broker = TokenBroker(client, token_provider=tokens, retry=retry)
    return EmbedConfigResolver(provider or load_provider_config(), broker)
