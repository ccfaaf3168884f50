import hashlib
import logging
import os
import pathlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smartflow_server.api import analytics as analytics_router
from smartflow_server.api import context as context_router
from smartflow_server.api import flows as flows_router
from smartflow_server.api import playback as playback_router
from smartflow_server.api import system as system_router
from smartflow_server.api import version as version_router
from smartflow_server.core.config import settings
from smartflow_server.core.dependencies import close_entity_store
from smartflow_server.core.logging_config import configure_logging

_log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup and release the store client on shutdown."""
    configure_logging(settings.log_level, playback_ticks=settings.log_playback_ticks)

    if os.getenv('SMARTFLOW_DEVMODE'):
        try:
            h = hashlib.sha256(pathlib.Path(__file__).read_bytes()).hexdigest()[:12]
            print(f'[dev] main.py sha256 {h}', flush=True)
        except OSError as _e:
            print(f'[dev] hash error: {_e}', flush=True)

    for line in settings.diagnostics or []:
        print(f'[config] {line}', flush=True)
    if not settings.entity_store_url:
        print('[store] SMARTFLOW_STORE_URL not set; flow endpoints will answer 503', flush=True)
    else:
        print(f'[store] entity store at {settings.entity_store_url}', flush=True)

    yield

    await close_entity_store()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    try:
        body = await request.body()
    except RuntimeError:
        body = b''
    _log.warning('rejected %s %s body=%s errors=%s', request.method, request.url.path, body.decode(errors='replace')[:500], exc.errors())
    return JSONResponse(status_code=422, content={'detail': jsonable_encoder(exc.errors())})


_ROUTERS = (
    flows_router.router,
    analytics_router.router,
    context_router.router,
    playback_router.router,
    system_router.router,
    version_router.router,
)
for _router in _ROUTERS:
    app.include_router(_router, prefix=settings.api_v1_prefix)

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.get('/')
async def root():
    return {'status': 'ok', 'app': settings.app_name}
