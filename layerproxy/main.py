# layerproxy/main.py
import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from layerproxy.api.proxy import endpoints as proxy_endpoints
from layerproxy.core.config import settings
from layerproxy.core.errors import ProxyError
from layerproxy.services.registry_client_service import get_registry_client

# 로깅 설정 (config에서 레벨 가져오기)
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

APP_VERSION = settings.API_VERSION


app = FastAPI(
    title="Layer Proxy",
    version=APP_VERSION,
    description="""
    Stateless proxy that resolves image references against a remote registry.
    Handles Bearer token authentication transparently and redirects manifest
    requests to the content blob of the selected layer.
    """,
)


@app.on_event("startup")
async def startup_event():
    logger.info(f"Application startup... Version: {APP_VERSION}, Log Level: {settings.LOG_LEVEL}")
    if settings.REGISTRY_USERNAME:
        logger.info(f"Token exchange will authenticate as '{settings.REGISTRY_USERNAME}'")
    else:
        logger.info("No REGISTRY_USERNAME configured, requesting anonymous tokens")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Application shutdown...")
    await get_registry_client().aclose()


@app.exception_handler(ProxyError)
async def proxy_error_handler(request: Request, exc: ProxyError):
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(f"{type(exc).__name__} while handling {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# 헬스 체크는 catch-all 프록시 라우트보다 먼저 등록해야 함
@app.get("/healthz", tags=["Health"], include_in_schema=False)
async def healthz():
    return {"status": "ok", "version": APP_VERSION}


app.include_router(proxy_endpoints.router, tags=["Layer Proxy"])
