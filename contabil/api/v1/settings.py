from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from contabil.core.authorization import require_capability
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db

router = APIRouter(tags=["Configuracoes"])


class SettingsUpdate(BaseModel):
    model_config = {"extra": "forbid"}

    firm_name: str | None = None
    firm_cnpj: str | None = None
    pix_key: str | None = None
    payment_link: str | None = None


def get_or_create_settings(db: Session) -> models.AppSettings:
    app_settings = db.query(models.AppSettings).filter(models.AppSettings.id == 1).first()
    if app_settings is None:
        app_settings = models.AppSettings(id=1, firm_name="JZF Contabilidade")
        db.add(app_settings)
        db.commit()
        db.refresh(app_settings)
    return app_settings


def to_response(app_settings: models.AppSettings) -> dict:
    return {
        "firm_name": app_settings.firm_name,
        "firm_cnpj": app_settings.firm_cnpj,
        "pix_key": app_settings.pix_key,
        "payment_link": app_settings.payment_link,
        "updated_at": app_settings.updated_at,
    }


@router.get("/configuracoes")
def read_settings(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return to_response(get_or_create_settings(db))


@router.put("/configuracoes")
def update_settings(
    payload: SettingsUpdate,
    current_user: models.User = Depends(require_capability("settings")),
    db: Session = Depends(get_db),
):
    app_settings = get_or_create_settings(db)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field == "firm_name":
            app_settings.firm_name = (value or "").strip() or app_settings.firm_name
            continue
        setattr(app_settings, field, (value or "").strip() or None)
    db.commit()
    db.refresh(app_settings)
    return to_response(app_settings)
