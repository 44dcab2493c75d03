import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from contabil.api.v1.auth import router as auth_router
from contabil.api.v1.me import router as me_router
from contabil.api.v1.clients import router as clients_router
from contabil.api.v1.users import router as users_router
from contabil.api.v1.invoices import router as invoices_router
from contabil.api.v1.tasks import router as tasks_router
from contabil.api.v1.notifications import router as notifications_router
from contabil.api.v1.settings import router as settings_router
from contabil.api.v1.dashboard import router as dashboard_router
from contabil.api.v1.reports import router as reports_router
from contabil.api.v1.doctor import router as doctor_router
from contabil.core.config import settings
from contabil.db import models
from contabil.db.init_db import ensure_missing_columns, seed_initial_data
from contabil.db.session import engine
from contabil.notifications.scheduler import shutdown_scheduler, start_scheduler

if not logging.getLogger().handlers:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("contabil")

app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="JZF Contabilidade - Gestao de clientes, cobranca e tarefas",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    models.Base.metadata.create_all(bind=engine)
    ensure_missing_columns(engine)
    seed_initial_data()
    start_scheduler()
    if settings.ENV.lower() == "production":
        if settings.SECRET_KEY == "dev-secret-change-me":
            logger.warning("SECRET_KEY esta usando valor padrao em producao.")
        if settings.SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
            logger.warning("SQLALCHEMY_DATABASE_URI aponta para SQLite em producao.")


@app.on_event("shutdown")
def on_shutdown() -> None:
    shutdown_scheduler()


app.include_router(auth_router, prefix="/api")
app.include_router(me_router, prefix="/api")
app.include_router(clients_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(invoices_router, prefix="/api")
app.include_router(tasks_router, prefix="/api")
app.include_router(notifications_router, prefix="/api")
app.include_router(settings_router, prefix="/api")
app.include_router(dashboard_router, prefix="/api")
app.include_router(reports_router, prefix="/api")
app.include_router(doctor_router, prefix="/api")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response
