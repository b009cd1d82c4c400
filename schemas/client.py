"""Client account schemas as seen by the analysis core."""
from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


IntegrationType = Literal["asaas", "dom_pagamentos"]


class ClientIntegration(BaseModel):
    type: IntegrationType
    # Opaque customer id for Asaas, CPF/CNPJ for Dom
    customer_ref: Optional[str] = None


class ClientAccount(BaseModel):
    id: str
    agency_id: str
    agency_name: str = "Agency"
    name: str
    short_name: Optional[str] = None
    segment: Optional[str] = None
    contract_start: Optional[date] = None
    contract_type: Optional[str] = None
    contract_value: Optional[float] = None
    messaging_group_id: Optional[str] = None
    integrations: List[ClientIntegration] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.short_name or self.name


class DomCredentials(BaseModel):
    token: str
    environment: Literal["production", "sandbox"] = "production"


class AgencyCredentials(BaseModel):
    """Decrypted agency-level provider credentials. Read-only within a run."""

    asaas_api_key: Optional[str] = None
    dom: Optional[DomCredentials] = None
    llm_api_key: Optional[str] = None
    messaging_instance: Optional[str] = None
    messaging_number: Optional[str] = None
