from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, field_validator


class OpportunityItem(BaseModel):
    title: str
    description: str
    type: Literal["IncentivoFiscal", "Licitacao", "Financiamento"]
    source: str
    submission_deadline: Optional[date] = None

    model_config = {"extra": "forbid"}

    @field_validator("title", "source")
    @classmethod
    def not_blank(cls, value: str) -> str:
        cleaned = (value or "").strip()
        if not cleaned:
            raise ValueError("Campo obrigatorio")
        return cleaned

    @field_validator("submission_deadline", mode="before")
    @classmethod
    def empty_deadline(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class OpportunityResult(BaseModel):
    opportunities: list[OpportunityItem]

    model_config = {"extra": "forbid"}


class ComplianceItem(BaseModel):
    title: str
    description: str
    status: Literal["OK", "Atencao", "Pendencia", "Informativo"]
    source: Optional[str] = None

    model_config = {"extra": "forbid"}


class ComplianceResult(BaseModel):
    findings: list[ComplianceItem]

    model_config = {"extra": "forbid"}


def opportunity_json_schema() -> dict:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["opportunities"],
        "properties": {
            "opportunities": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["title", "description", "type", "source", "submission_deadline"],
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "type": {
                            "type": "string",
                            "enum": ["IncentivoFiscal", "Licitacao", "Financiamento"],
                        },
                        "source": {"type": "string"},
                        "submission_deadline": {"type": ["string", "null"]},
                    },
                },
            }
        },
    }


def compliance_json_schema() -> dict:
    return {
        "type": "object",
        "additionalProperties": False,
        "required": ["findings"],
        "properties": {
            "findings": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["title", "description", "status", "source"],
                    "properties": {
                        "title": {"type": "string"},
                        "description": {"type": "string"},
                        "status": {
                            "type": "string",
                            "enum": ["OK", "Atencao", "Pendencia", "Informativo"],
                        },
                        "source": {"type": ["string", "null"]},
                    },
                },
            }
        },
    }
