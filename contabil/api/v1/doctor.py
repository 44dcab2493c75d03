import logging

from fastapi import APIRouter

from contabil.advisor.openai_client import is_configured
from contabil.core import config
from contabil.notifications.scheduler import scheduler_running

router = APIRouter(tags=["Doctor"])
logger = logging.getLogger("contabil.doctor")


@router.get("/doctor")
def doctor():
    settings = config.settings
    ai_ok = is_configured()
    pdf_ok = True
    try:
        import weasyprint  # noqa: F401
    except Exception:
        pdf_ok = False
    scheduler_ok = scheduler_running() or not settings.REMINDERS_ENABLED
    cors_ok = bool(settings.BACKEND_CORS_ORIGINS)

    overall = all([ai_ok, pdf_ok, scheduler_ok, cors_ok])
    if not overall:
        logger.warning("doctor: ai=%s pdf=%s scheduler=%s cors=%s", ai_ok, pdf_ok, scheduler_ok, cors_ok)
    return {
        "status": "OK" if overall else "WARN",
        "ai": "OK" if ai_ok else "ERROR",
        "pdf": "OK" if pdf_ok else "ERROR",
        "scheduler": "OK" if scheduler_ok else "ERROR",
        "cors": "OK" if cors_ok else "ERROR",
    }


@router.get("/health")
def health():
    return {"status": "ok"}
