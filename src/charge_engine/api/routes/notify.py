"""Platform callback endpoints.

Platforms post form-encoded parameters and expect a platform-specific
acknowledgement. Anything other than a success acknowledgement makes the
platform retry later.
"""

import logging

from fastapi import APIRouter, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse

from charge_engine.api.dependencies import Gateway
from charge_engine.trade.types import PlatformType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notify", tags=["notify"])


def acknowledge(platform: str, handled: bool) -> PlainTextResponse:
    """Build the acknowledgement body the platform expects."""
    if platform == PlatformType.UNIONPAY.value:
        if handled:
            return PlainTextResponse("ok", status_code=status.HTTP_200_OK)
        return PlainTextResponse("fail", status_code=status.HTTP_400_BAD_REQUEST)
    return PlainTextResponse("success" if handled else "fail", status_code=status.HTTP_200_OK)


async def read_params(request: Request) -> dict[str, str]:
    form = await request.form()
    return {str(k): str(v) for k, v in form.items()}


@router.post("/{platform}/charge", response_class=PlainTextResponse)
async def charge_notify(platform: str, request: Request, gateway: Gateway) -> PlainTextResponse:
    """Receive a charge callback."""
    params = await read_params(request)
    handled = await run_in_threadpool(gateway.handle_charge_notify, platform, params)
    logger.info("Charge notify from %s acknowledged as %s", platform, handled)
    return acknowledge(platform, handled)


@router.post("/{platform}/refund", response_class=PlainTextResponse)
async def refund_notify(platform: str, request: Request, gateway: Gateway) -> PlainTextResponse:
    """Receive a refund callback."""
    params = await read_params(request)
    handled = await run_in_threadpool(gateway.handle_refund_notify, platform, params)
    logger.info("Refund notify from %s acknowledged as %s", platform, handled)
    return acknowledge(platform, handled)
