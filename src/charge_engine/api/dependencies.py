"""FastAPI dependencies for dependency injection."""

from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from charge_engine.trade.gateway import TradeGateway


def get_gateway(request: Request) -> TradeGateway:
    """Get the trade gateway built at application startup."""
    return request.app.state.gateway


def get_app_id(x_app_id: Annotated[str | None, Header()] = None) -> int:
    """Extract merchant application ID from header."""
    if not x_app_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-App-ID header is required",
        )
    try:
        app_id = int(x_app_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid X-App-ID format",
        )
    if app_id <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-App-ID must be positive",
        )
    return app_id


# Type aliases for cleaner dependency injection
Gateway = Annotated[TradeGateway, Depends(get_gateway)]
AppId = Annotated[int, Depends(get_app_id)]
