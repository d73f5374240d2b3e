#!/usr/bin/env python3
"""
Small CLI around the embed-config flow.
Usage examples:
    python -m pbi_embed.cli check-config
    python -m pbi_embed.cli issue-token --sub 1 --name "Alice CEO" --email ceo@company.com --role CEO
    python -m pbi_embed.cli embed-config --report SalesPerformance --role SalesManager
    BEARER_TOKEN=... python -m pbi_embed.cli fetch --report GrowthForecast
Environment:
  EMBED_API_URL (default: http://localhost:${PORT or 4000})
  POWERBI_* provider settings, JWT_SECRET
"""
from __future__ import annotations
import argparse
import asyncio
import json
import os

import httpx

from pbi_embed.config import REPORT_ENV_KEYS, is_placeholder, load_provider_config
from pbi_embed.container import build_resolver, new_http_client
from pbi_embed.errors import EmbedError
from pbi_embed.schemas.embed import CallerIdentity


def _base_url() -> str:
    url = os.getenv("EMBED_API_URL")
    if url:
        return url.rstrip("/")
    return f"http://localhost:{os.getenv('PORT', '4000')}"


def _print(obj) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2))


def cmd_check_config(args: argparse.Namespace) -> int:
    prov = load_provider_config()
    reports = {
        name: {"env": REPORT_ENV_KEYS[name], "configured": not is_placeholder(rid)}
        for name, rid in prov.catalog.entries.items()
    }
    out = {
        "credentials": {"complete": prov.credentials.complete, "missing": prov.credentials.missing()},
        "workspace": {"configured": prov.workspace_configured()},
        "reports": reports,
    }
    live = prov.credentials.complete and prov.workspace_configured() and not is_placeholder(prov.catalog.report_id_for(None))
    out["mode"] = "live" if live else "demo"
    _print(out)
    return 0


def cmd_issue_token(args: argparse.Namespace) -> int:
    from pbi_embed.api.security import issue_token
    caller = CallerIdentity(id=args.sub, name=args.name, email=args.email, role=args.role)
    print(issue_token(caller, expires_min=args.expires_min))
    return 0


async def _resolve(report: str, caller: CallerIdentity):
    async with new_http_client() as client:
        resolver = build_resolver(client, load_provider_config())
        return await resolver.resolve(report, caller)


def cmd_embed_config(args: argparse.Namespace) -> int:
    caller = CallerIdentity(id="cli", name="cli", role=args.role)
    try:
        result = asyncio.run(_resolve(args.report, caller))
    except EmbedError as e:
        _print({"message": e.public_message(), "error": e.kind, "status": e.status})
        return 2
    _print(result.model_dump())
    return 0


def cmd_fetch(args: argparse.Namespace) -> int:
    token = args.token or os.getenv("BEARER_TOKEN")
    if not token:
        print("bearer token required (--token or BEARER_TOKEN)")
        return 1
    url = _base_url() + "/api/powerbi/embed-config"
    with httpx.Client(timeout=15) as c:
        r = c.get(url, params={"reportName": args.report}, headers={"authorization": f"Bearer {token}"})
        _print(r.json())
        return 0 if r.status_code < 400 else 2


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="pbi-embed", description="Power BI embed-config helpers")
    sub = p.add_subparsers(dest="cmd")

    sp_chk = sub.add_parser("check-config", help="Show which Power BI settings are missing (no secrets printed)")
    sp_chk.set_defaults(func=cmd_check_config)

    sp_tok = sub.add_parser("issue-token", help="Sign a caller JWT for local testing")
    sp_tok.add_argument("--sub", required=True)
    sp_tok.add_argument("--name")
    sp_tok.add_argument("--email")
    sp_tok.add_argument("--role")
    sp_tok.add_argument("--expires-min", type=int)
    sp_tok.set_defaults(func=cmd_issue_token)

    sp_emb = sub.add_parser("embed-config", help="Resolve an embed config in-process")
    sp_emb.add_argument("--report", default="ExecutiveOverview")
    sp_emb.add_argument("--role")
    sp_emb.set_defaults(func=cmd_embed_config)

    sp_fetch = sub.add_parser("fetch", help="GET /api/powerbi/embed-config from a running server")
    sp_fetch.add_argument("--report", default="ExecutiveOverview")
    sp_fetch.add_argument("--token")
    sp_fetch.set_defaults(func=cmd_fetch)

    args = p.parse_args(argv)
    if not getattr(args, "func", None):
        p.print_help()
        return 1
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
