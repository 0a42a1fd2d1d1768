"""Cat endpoints: plain-text admin views over the counting service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from kipu.channel import EncodingChannel
from kipu.deps import get_count_endpoint
from kipu.endpoint import CountEndpoint
from kipu.parser import parse_request_context

router = APIRouter(prefix="/cat", tags=["cat"])

CAT_PATHS = (
    "/cat/count",
    "/cat/count/{index}",
)


@router.get("", response_class=PlainTextResponse)
def cat_index():
    return "=^.^=\n" + "".join(f"{path}\n" for path in CAT_PATHS)


async def _count(request: Request, endpoint: CountEndpoint, index: str | None = None) -> Response:
    params = dict(request.query_params)
    if index is not None:
        params["index"] = index
    channel = EncodingChannel(parse_request_context(params))
    await endpoint.handle(params, channel)
    if channel.response is None:
        # both the answer and the error report failed to encode
        return Response(status_code=500)
    return channel.response


@router.get("/count")
async def count_all(request: Request, endpoint: CountEndpoint = Depends(get_count_endpoint)):
    return await _count(request, endpoint)


@router.get("/count/{index}")
async def count_indices(
    index: str,
    request: Request,
    endpoint: CountEndpoint = Depends(get_count_endpoint),
):
    return await _count(request, endpoint, index)
