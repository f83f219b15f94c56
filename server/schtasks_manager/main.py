"""FastAPI application entry point."""
import logging
import time

from fastapi import FastAPI, Request

from .api.routes import router
from .core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    description="Manage Windows scheduled tasks on local, remote and clustered targets",
)


@app.middleware("http")
async def audit_middleware(request: Request, call_next):
    """Log every request with its outcome and duration."""
    start_time = time.time()
    client_ip = request.client.host if request.client else "unknown"

    try:
        response = await call_next(request)
    except Exception:
        logger.exception(
            "Unhandled error for %s %s from %s", request.method, request.url.path, client_ip
        )
        raise

    logger.info(
        "%s %s from %s -> %s (%.1fms)",
        request.method,
        request.url.path,
        client_ip,
        response.status_code,
        (time.time() - start_time) * 1000,
    )
    return response


app.include_router(router)


if __name__ == "__main__":  # pragma: no cover - manual launch
    import uvicorn

    uvicorn.run("schtasks_manager.main:app", host="0.0.0.0", port=8000)
