import logging
import threading
import time
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from contabil.advisor.openai_client import request_structured
from contabil.advisor.schemas import (
    ComplianceResult,
    OpportunityResult,
    compliance_json_schema,
    opportunity_json_schema,
)
from contabil.core.config import settings
from contabil.db import models

logger = logging.getLogger("contabil.advisor")

EXPIRING_WINDOW_DAYS = 7

_last_opportunity_search: dict[str, float] = {}
_cooldown_lock = threading.Lock()


class CooldownActive(Exception):
    def __init__(self, remaining_seconds: int):
        super().__init__(f"Aguarde {remaining_seconds}s para buscar novamente")
        self.remaining_seconds = remaining_seconds


def reset_cooldowns() -> None:
    with _cooldown_lock:
        _last_opportunity_search.clear()


def cooldown_remaining(client_id: str, now: Optional[float] = None) -> int:
    last = _last_opportunity_search.get(client_id)
    if last is None:
        return 0
    now = time.monotonic() if now is None else now
    remaining = settings.OPPORTUNITY_COOLDOWN_SECONDS - (now - last)
    return max(0, int(remaining + 0.999))


def claim_cooldown(client_id: str) -> int:
    """Start the cooldown for ``client_id`` unless one is running.

    Returns 0 when this caller started it, otherwise the seconds left.
    """
    with _cooldown_lock:
        now = time.monotonic()
        remaining = cooldown_remaining(client_id, now)
        if remaining:
            return remaining
        _last_opportunity_search[client_id] = now
        return 0


def _system_prompt() -> str:
    return (
        "Voce e um assistente de um escritorio de contabilidade brasileiro. "
        "Responda sempre em pt-BR e devolva apenas JSON valido seguindo o schema exigido. "
        "Nao invente fontes: cada item deve citar uma fonte publica verificavel (URL ou orgao). "
        "Se nao houver itens relevantes, devolva a lista vazia."
    )


def _client_profile(client: models.Client) -> str:
    cnaes = ", ".join(client.cnaes or []) or "Nao informado"
    keywords = ", ".join(client.keywords or []) or "Nao informado"
    return (
        "Perfil da empresa:\n"
        f"- Razao social: {client.company}\n"
        f"- CNPJ: {client.cnpj or 'Nao informado'}\n"
        f"- Regime tributario: {client.tax_regime}\n"
        f"- CNAEs: {cnaes}\n"
        f"- Palavras-chave: {keywords}\n"
        f"- Atividade: {client.business_description or 'Nao informado'}\n"
    )


def _opportunities_prompt(client: models.Client, today: date) -> str:
    return (
        f"{_client_profile(client)}\n"
        f"Data de hoje: {today.isoformat()}.\n"
        "Liste oportunidades financeiras abertas para esta empresa: incentivos fiscais, "
        "licitacoes e linhas de financiamento. Use submission_deadline no formato AAAA-MM-DD "
        "quando houver prazo, ou null."
    )


def _compliance_prompt(client: models.Client, today: date) -> str:
    return (
        f"{_client_profile(client)}\n"
        f"Data de hoje: {today.isoformat()}.\n"
        "Verifique pendencias fiscais e legais conhecidas em fontes publicas para esta empresa "
        "(certidoes negativas, obrigacoes acessorias do regime, situacao cadastral). "
        "Classifique cada item como OK, Atencao, Pendencia ou Informativo."
    )


def find_opportunities(
    db: Session,
    client: models.Client,
    now: Optional[datetime] = None,
) -> tuple[list[models.Opportunity], dict]:
    """Search opportunities and keep only those not yet stored for the client.

    Raises ``CooldownActive`` while the per-client cooldown is running. The
    cooldown starts on every attempt, successful or not.
    """
    remaining = claim_cooldown(client.id)
    if remaining > 0:
        raise CooldownActive(remaining)

    now = now or datetime.utcnow()
    result, meta = request_structured(
        settings.OPENAI_MODEL,
        _system_prompt(),
        _opportunities_prompt(client, now.date()),
        "opportunities",
        opportunity_json_schema(),
        validate=OpportunityResult.model_validate,
    )

    seen = {
        (title, source)
        for title, source in db.query(models.Opportunity.title, models.Opportunity.source)
        .filter(models.Opportunity.client_id == client.id)
        .all()
    }
    created: list[models.Opportunity] = []
    for item in result.opportunities:
        key = (item.title, item.source)
        if key in seen:
            continue
        seen.add(key)
        opportunity = models.Opportunity(
            client_id=client.id,
            title=item.title,
            description=item.description,
            type=item.type,
            source=item.source,
            submission_deadline=item.submission_deadline,
            date_found=now,
        )
        db.add(opportunity)
        created.append(opportunity)
    db.commit()
    for opportunity in created:
        db.refresh(opportunity)
    logger.info(
        "opportunities client_id=%s found=%s new=%s latency_ms=%s",
        client.id,
        len(result.opportunities),
        len(created),
        meta.get("latency_ms"),
    )
    return created, meta


def check_compliance(
    db: Session,
    client: models.Client,
    now: Optional[datetime] = None,
) -> tuple[list[models.ComplianceFinding], dict]:
    """Run a compliance check; the new findings replace the previous ones."""
    now = now or datetime.utcnow()
    result, meta = request_structured(
        settings.OPENAI_MODEL,
        _system_prompt(),
        _compliance_prompt(client, now.date()),
        "compliance",
        compliance_json_schema(),
        validate=ComplianceResult.model_validate,
    )
    db.query(models.ComplianceFinding).filter(
        models.ComplianceFinding.client_id == client.id
    ).delete(synchronize_session=False)
    findings = [
        models.ComplianceFinding(
            client_id=client.id,
            title=item.title,
            description=item.description,
            status=item.status,
            source=item.source,
            date_checked=now,
        )
        for item in result.findings
    ]
    db.add_all(findings)
    db.commit()
    for finding in findings:
        db.refresh(finding)
    logger.info("compliance client_id=%s findings=%s", client.id, len(findings))
    return findings, meta


def deadline_info(deadline: Optional[date], today: date) -> Optional[dict]:
    if deadline is None:
        return None
    days_left = (deadline - today).days
    if days_left < 0:
        status = "expired"
    elif days_left <= EXPIRING_WINDOW_DAYS:
        status = "expiring"
    else:
        status = "open"
    return {"status": status, "days_left": days_left, "date": deadline.isoformat()}
