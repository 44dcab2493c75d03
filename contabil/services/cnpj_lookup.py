import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Optional

import requests

from contabil.core.config import settings

logger = logging.getLogger("contabil.cnpj")


class CnpjLookupError(RuntimeError):
    pass


class CnpjNotFound(CnpjLookupError):
    pass


@dataclass
class CnpjData:
    cnpj: str
    company: Optional[str]
    trade_name: Optional[str]
    name: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    cnaes: list[str] = field(default_factory=list)
    business_description: Optional[str] = None
    registration_status: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


def only_digits(value: str | None) -> str:
    return re.sub(r"\D", "", value or "")


def _format_cnae(code) -> Optional[str]:
    digits = only_digits(str(code)) if code is not None else ""
    if not digits.strip("0"):
        return None
    # codigos numericos perdem o zero a esquerda
    digits = digits.zfill(7)
    if len(digits) != 7:
        return digits
    return f"{digits[:4]}-{digits[4]}/{digits[5:]}"


def _parse_payload(cnpj: str, data: dict) -> CnpjData:
    cnaes: list[str] = []
    descriptions: list[str] = []
    main_cnae = _format_cnae(data.get("cnae_fiscal"))
    if main_cnae:
        cnaes.append(main_cnae)
    if data.get("cnae_fiscal_descricao"):
        descriptions.append(data["cnae_fiscal_descricao"])
    for item in data.get("cnaes_secundarios") or []:
        if not isinstance(item, dict):
            continue
        code = _format_cnae(item.get("codigo"))
        if code and code not in cnaes:
            cnaes.append(code)
            if item.get("descricao"):
                descriptions.append(item["descricao"])

    partners = [p for p in data.get("qsa") or [] if isinstance(p, dict)]
    responsible = partners[0].get("nome_socio") if partners else None
    phone = (data.get("ddd_telefone_1") or "").strip() or None

    return CnpjData(
        cnpj=cnpj,
        company=data.get("razao_social"),
        trade_name=data.get("nome_fantasia") or None,
        name=responsible,
        email=(data.get("email") or "").strip().lower() or None,
        phone=phone,
        cnaes=cnaes,
        business_description="; ".join(descriptions) or None,
        registration_status=data.get("descricao_situacao_cadastral"),
        city=data.get("municipio"),
        state=data.get("uf"),
    )


def lookup_cnpj(cnpj: str, timeout: float = 10.0) -> CnpjData:
    digits = only_digits(cnpj)
    if len(digits) != 14:
        raise ValueError("Por favor, insira um CNPJ valido com 14 digitos.")
    url = f"{settings.CNPJ_LOOKUP_URL}/{digits}"
    try:
        resp = requests.get(url, timeout=timeout)
    except requests.RequestException as exc:
        logger.warning("cnpj lookup request failed: %s", exc)
        raise CnpjLookupError("Falha ao consultar o CNPJ") from exc
    if resp.status_code == 404:
        raise CnpjNotFound("CNPJ nao encontrado")
    if resp.status_code != 200:
        logger.warning("cnpj lookup status_code=%s", resp.status_code)
        raise CnpjLookupError(f"Consulta de CNPJ retornou HTTP {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as exc:
        raise CnpjLookupError("Resposta invalida da consulta de CNPJ") from exc
    if not isinstance(data, dict):
        raise CnpjLookupError("Resposta invalida da consulta de CNPJ")
    return _parse_payload(digits, data)
