"""Normalized payment schema shared by every payment provider."""
from datetime import date
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    OVERDUE = "overdue"
    CHARGEBACK = "chargeback"


PaymentSource = Literal["asaas", "dom"]


class NormalizedPayment(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    status: PaymentStatus
    due_date: date
    payment_date: Optional[date] = None
    gross_value: float
    net_value: float
    source_provider: PaymentSource
