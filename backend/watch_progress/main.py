from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager
import logging

from watch_progress.core.config import settings
from watch_progress.core.logging_config import configure_logging
from watch_progress.api import progress as progress_router
from watch_progress.api import ws as ws_router
from watch_progress.api import version as version_router
from watch_progress.db.session import engine, Base
from watch_progress.models import progress as _progress_models  # noqa: F401 - registers tables

_log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler: configure logging and make sure tables exist."""
    configure_logging(settings.log_level)
    for line in settings.diagnostics or []:
        _log.debug('[config] %s', line)
    try:
        Base.metadata.create_all(bind=engine)
    except Exception as e:
        _log.error('table creation failed: %s', e)
    _log.info('%s %s ready db=%s', settings.app_name, settings.version, settings.database_url)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    try:
        body = await request.body()
    except Exception:
        body = b''
    _log.warning('validation error url=%s body=%s errors=%s', request.url, body.decode(errors='replace'), exc.errors())
    return JSONResponse(status_code=422, content={'detail': jsonable_encoder(exc.errors())})


# Routers
app.include_router(progress_router.router, prefix=settings.api_v1_prefix)
app.include_router(ws_router.router, prefix=settings.api_v1_prefix)
app.include_router(version_router.router, prefix=settings.api_v1_prefix)

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
