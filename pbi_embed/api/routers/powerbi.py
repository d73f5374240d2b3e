from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, Query, Request, Response

from pbi_embed.api.security import dep_current_caller
from pbi_embed.schemas.embed import CallerIdentity, ReportName


router = APIRouter()
logger = logging.getLogger(__name__)

T = TypeVar("T")

# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    pass


async def _wait_for_disconnect(request: Request) -> None:
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def run_until_disconnect(request: Request, work: Awaitable[T]) -> T:
    """Await ``work``; cancel it (and its outbound calls) if the client goes away."""
    task = asyncio.ensure_future(work)
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))
    try:
        await asyncio.wait({task, watcher}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        watcher.cancel()
    if not task.done():
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise ClientDisconnected()
    return task.result()


@router.get("/api/powerbi/embed-config")
async def embed_config(
    request: Request,
    reportName: str = Query(ReportName.ExecutiveOverview.value, description="Logical report name; unknown names use ExecutiveOverview"),
    caller: CallerIdentity = Depends(dep_current_caller),
):
    reportName = reportName or ReportName.ExecutiveOverview.value
    resolver = request.app.state.resolver
    try:
        return await run_until_disconnect(request, resolver.resolve(reportName, caller))
    except ClientDisconnected:
        logger.info("client disconnected, embed config for %s cancelled", reportName)
        return Response(status_code=CLIENT_CLOSED_REQUEST)
