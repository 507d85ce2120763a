"""MQPanel: resilient local gateway to a RabbitMQ admin API."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from mqpanel.auth import verify_api_key
from mqpanel.config import Settings, settings
from mqpanel.errors import ApiError, AuthenticationRequired, NetworkError
from mqpanel.routes import clusters, health, resources
from mqpanel.routes import session as session_routes
from mqpanel.session import ClientSession

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("mqpanel")


@asynccontextmanager
async def lifespan(app: FastAPI):
    Settings.validate()

    session = ClientSession(settings)
    app.state.session = session

    if settings.ADMIN_PASSWORD:
        try:
            await session.login()
        except Exception as e:
            # Stay up; the UI can log in through /api/session/login
            log.warning("Initial login to %s failed: %s", settings.ADMIN_API_URL, e)

    log.info("MQPanel started: admin API %s, port %s", settings.ADMIN_API_URL, settings.PORT)
    yield

    await session.close()
    log.info("MQPanel shutdown complete")


app = FastAPI(
    title="MQPanel",
    version="0.1.0",
    lifespan=lifespan,
    dependencies=[Depends(verify_api_key)],
)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    body = exc.to_dict()
    if isinstance(exc, AuthenticationRequired):
        session = getattr(request.app.state, "session", None)
        body["login_url"] = (session.login_url if session else None) or settings.LOGIN_PATH
    return JSONResponse(status_code=exc.status, content=body)


@app.exception_handler(NetworkError)
async def network_error_handler(request: Request, exc: NetworkError):
    return JSONResponse(status_code=502, content=exc.to_dict())


app.include_router(health.router)
app.include_router(session_routes.router)
# Before resources: its /{cluster_id}/{resource_type} would shadow these
app.include_router(clusters.router)
app.include_router(resources.router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "mqpanel.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level="info",
    )
