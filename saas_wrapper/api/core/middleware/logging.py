import time
import uuid

import structlog
from fastapi import Request

from saas_wrapper.utils.logger import get_client_ip, get_logger

logger = get_logger(__name__)


async def logging_middleware(request: Request, call_next):
    start_time = time.time()

    if request.url.path == "/health":
        return await call_next(request)

    structlog.contextvars.clear_contextvars()
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    ip_address = get_client_ip(request)
    structlog.contextvars.bind_contextvars(
        ip_address=ip_address,
        method=request.method,
        path=request.url.path,
        request_id=request_id,
    )
    tenant_id = tenant_from_path(request.url.path)
    if tenant_id:
        structlog.contextvars.bind_contextvars(tenant_id=tenant_id)

    response = await call_next(request)

    process_time = time.time() - start_time

    logger.info(
        "request",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration=int(process_time * 1000),
    )
    response.headers["X-Request-ID"] = request_id

    return response


def tenant_from_path(path: str) -> str | None:
    """Extract the tenant segment from /v1/tenants/<tenant_id>/... paths."""
    parts = path.strip("/").split("/")
    if "tenants" in parts:
        index = parts.index("tenants") + 1
        if index < len(parts):
            return parts[index]
    return None
