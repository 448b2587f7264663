from fastapi import Request
from fastapi.responses import JSONResponse
import structlog

from hedgewatch.errors import HedgeWatchError

logger = structlog.get_logger(__name__)


async def hedgewatch_error_handler(request: Request, exc: HedgeWatchError) -> JSONResponse:
    """
    Global exception handler for the HedgeWatch service.
    Converts internal, structured exceptions into standard JSON API responses.
    """
    error_data = exc.to_dict()

    logger.warning(
        "api_error_handled",
        path=request.url.path,
        error_code=error_data.get("error_code"),
        message=error_data.get("message"),
        status_code=exc.http_status,
        detail=error_data.get("detail"),
    )

    return JSONResponse(
        status_code=exc.http_status,
        content={"error": error_data},
    )
