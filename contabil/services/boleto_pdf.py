import base64
from decimal import Decimal
from io import BytesIO
from typing import Optional

import qrcode
from jinja2 import Template

from contabil.db import models

DIGITABLE_LINE_PLACEHOLDER = "12345.12345 12345.123456 12345.123456 1 12345678901234"


def _format_brl(amount) -> str:
    value = Decimal(str(amount or 0)).quantize(Decimal("0.01"))
    integer, _, cents = f"{value:.2f}".partition(".")
    groups = []
    sign = "-" if integer.startswith("-") else ""
    integer = integer.lstrip("-")
    while integer:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    return f"R$ {sign}{'.'.join(groups) or '0'},{cents}"


def _pix_qr_data_url(pix_key: Optional[str]) -> Optional[str]:
    if not pix_key:
        return None
    buf = BytesIO()
    qrcode.make(pix_key).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def build_boleto_context(
    invoice: models.Invoice,
    client: models.Client,
    app_settings: Optional[models.AppSettings],
) -> dict:
    firm_name = (app_settings.firm_name if app_settings else None) or "JZF Contabilidade"
    firm_cnpj = (app_settings.firm_cnpj if app_settings else None) or "00.000.000/0001-00"
    pix_key = app_settings.pix_key if app_settings else None
    payment_link = app_settings.payment_link if app_settings else None
    return {
        "firm_name": firm_name,
        "firm_cnpj": firm_cnpj,
        "payer": f"{client.name} - {client.company}",
        "description": invoice.description,
        "due_date": invoice.due_date.strftime("%d/%m/%Y"),
        "amount": _format_brl(invoice.amount),
        "digitable_line": DIGITABLE_LINE_PLACEHOLDER,
        "pix_key": pix_key,
        "pix_qr_data_url": _pix_qr_data_url(pix_key),
        "payment_link": payment_link,
    }


_TEMPLATE = Template(
    """
<!doctype html>
<html lang="pt-br">
<head>
  <meta charset="utf-8" />
  <style>
    body { font-family: Helvetica, Arial, sans-serif; color: #333333; margin: 28px; font-size: 12px; }
    .brand { color: #922c26; font-size: 22px; font-weight: 700; }
    .subtitle { margin-top: 4px; font-size: 11px; }
    .divider { border-top: 2px solid #922c26; margin: 10px 0 18px; }
    table { width: 100%; border-collapse: collapse; }
    td { padding: 6px 0; vertical-align: top; }
    td.label { width: 110px; }
    .strong { font-weight: 700; }
    .line-label { margin-top: 26px; font-size: 10px; }
    .line { font-family: "Courier New", monospace; font-size: 13px; margin-top: 4px; }
    .pix { margin-top: 24px; }
    .pix img { width: 120px; height: 120px; }
  </style>
</head>
<body>
  <div class="brand">{{ firm_name }}</div>
  <div class="subtitle">BOLETO DE COBRANÇA (SIMULAÇÃO)</div>
  <div class="divider"></div>
  <table>
    <tr><td class="label">Beneficiário:</td><td>{{ firm_name }} - CNPJ: {{ firm_cnpj }}</td></tr>
    <tr><td class="label">Pagador:</td><td>{{ payer }}</td></tr>
    <tr><td class="label">Descrição:</td><td>{{ description }}</td></tr>
    <tr><td class="label">Vencimento:</td><td class="strong">{{ due_date }}</td></tr>
    <tr><td class="label">Valor:</td><td class="strong">{{ amount }}</td></tr>
  </table>
  <div class="line-label">Linha Digitável (simulação):</div>
  <div class="line">{{ digitable_line }}</div>
  {% if pix_qr_data_url %}
    <div class="pix">
      <div>Pague com PIX - chave: {{ pix_key }}</div>
      <img src="{{ pix_qr_data_url }}" alt="PIX" />
    </div>
  {% endif %}
  {% if payment_link %}
    <div class="pix">Link de pagamento: {{ payment_link }}</div>
  {% endif %}
</body>
</html>
""",
    autoescape=True,
)


def render_boleto_html(context: dict) -> str:
    return _TEMPLATE.render(**context)


def render_boleto_pdf(context: dict) -> bytes:
    from weasyprint import HTML

    return HTML(string=render_boleto_html(context)).write_pdf()
