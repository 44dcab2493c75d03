import logging
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from contabil.advisor.openai_client import OpenAIError, OpenAINotConfigured, is_configured
from contabil.advisor.service import CooldownActive, check_compliance, deadline_info, find_opportunities
from contabil.core.authorization import ensure_client_access, has_capability, is_admin_user
from contabil.core.security import get_current_user
from contabil.db import models
from contabil.db.session import get_db

router = APIRouter(tags=["Relatorios"])
logger = logging.getLogger("contabil.reports")

NO_NEW_OPPORTUNITIES = "Nenhuma nova oportunidade encontrada no momento."
GENERIC_ERROR = {"message": "Ocorreu um erro, tente novamente mais tarde"}


def _report_client(db: Session, user: models.User, client_id: str) -> models.Client:
    if is_admin_user(user) and not has_capability(user, "reports"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Permissao negada")
    ensure_client_access(user, client_id)
    client = db.query(models.Client).filter(models.Client.id == client_id).first()
    if not client:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cliente nao encontrado")
    return client


def _ensure_ai_configured() -> None:
    if not is_configured():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servico de IA nao configurado",
        )


def opportunity_to_response(opportunity: models.Opportunity, today: date) -> dict:
    return {
        "id": opportunity.id,
        "client_id": opportunity.client_id,
        "title": opportunity.title,
        "description": opportunity.description,
        "type": opportunity.type,
        "source": opportunity.source,
        "submission_deadline": opportunity.submission_deadline,
        "deadline": deadline_info(opportunity.submission_deadline, today),
        "date_found": opportunity.date_found,
    }


def finding_to_response(finding: models.ComplianceFinding) -> dict:
    return {
        "id": finding.id,
        "client_id": finding.client_id,
        "title": finding.title,
        "description": finding.description,
        "status": finding.status,
        "source": finding.source,
        "date_checked": finding.date_checked,
    }


@router.post("/relatorios/{client_id}/oportunidades")
def search_opportunities(
    client_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _report_client(db, current_user, client_id)
    _ensure_ai_configured()
    try:
        created, meta = find_opportunities(db, client)
    except CooldownActive as exc:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"detail": str(exc), "remaining_seconds": exc.remaining_seconds},
            headers={"Retry-After": str(exc.remaining_seconds)},
        )
    except OpenAINotConfigured as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except OpenAIError as exc:
        logger.warning("opportunity search failed client_id=%s error=%s", client.id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception:
        logger.exception("Erro ao buscar oportunidades client_id=%s", client.id)
        return JSONResponse(status_code=500, content=GENERIC_ERROR)

    today = date.today()
    response = {
        "oportunidades": [opportunity_to_response(o, today) for o in created],
        "meta": {"model": meta.get("model"), "latency_ms": meta.get("latency_ms")},
    }
    if not created:
        response["message"] = NO_NEW_OPPORTUNITIES
    return response


@router.get("/relatorios/{client_id}/oportunidades")
def list_opportunities(
    client_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _report_client(db, current_user, client_id)
    opportunities = (
        db.query(models.Opportunity)
        .filter(models.Opportunity.client_id == client.id)
        .order_by(models.Opportunity.date_found.desc())
        .all()
    )
    today = date.today()
    return {"oportunidades": [opportunity_to_response(o, today) for o in opportunities]}


@router.post("/relatorios/{client_id}/conformidade")
def run_compliance_check(
    client_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _report_client(db, current_user, client_id)
    _ensure_ai_configured()
    try:
        findings, meta = check_compliance(db, client)
    except OpenAINotConfigured as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except OpenAIError as exc:
        logger.warning("compliance check failed client_id=%s error=%s", client.id, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    except Exception:
        logger.exception("Erro ao verificar conformidade client_id=%s", client.id)
        return JSONResponse(status_code=500, content=GENERIC_ERROR)
    return {
        "conformidade": [finding_to_response(f) for f in findings],
        "meta": {"model": meta.get("model"), "latency_ms": meta.get("latency_ms")},
    }


@router.get("/relatorios/{client_id}/conformidade")
def list_compliance(
    client_id: str,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    client = _report_client(db, current_user, client_id)
    findings = (
        db.query(models.ComplianceFinding)
        .filter(models.ComplianceFinding.client_id == client.id)
        .order_by(models.ComplianceFinding.date_checked.desc(), models.ComplianceFinding.title)
        .all()
    )
    return {"conformidade": [finding_to_response(f) for f in findings]}
