"""Shared types for consultation review schemas."""

from enum import Enum

from pydantic import BaseModel, model_validator


class PayerType(str, Enum):
    """Who is financially responsible for an encounter's orders."""

    CASH = "cash"
    CORPORATE = "corporate"
    HMO = "hmo"


class ServiceCategory(str, Enum):
    """Billing category of a catalog service item."""

    LAB = "lab"
    PHARMACY = "pharmacy"
    CONSULTATION = "consultation"
    PROCEDURE = "procedure"
    ADMISSION = "admission"
    OTHER = "other"


class CoverageStatus(str, Enum):
    """How much of an item's price an HMO contract covers."""

    COVERED = "covered"
    PARTIAL = "partial"
    NOT_COVERED = "not_covered"
    # Non-HMO payers have no coverage classification
    NOT_APPLICABLE = "not_applicable"


class ValidationSeverity(str, Enum):
    """Severity level for review findings."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"


class ValidationStatus(str, Enum):
    """Status outcome of a review check."""

    PASS = "PASS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    INFO = "INFO"


class ValidationResult(BaseModel):
    """Result of a single review check, shown in the confirmation summary."""

    check_name: str
    status: ValidationStatus
    severity: ValidationSeverity
    detail: str
    item_id: str | None = None
    recommendation: str | None = None


class PayerContext(BaseModel):
    """Payer for the encounter being reviewed."""

    payer_type: PayerType = PayerType.CASH
    hmo_provider_id: str | None = None
    corporate_account_id: str | None = None

    @model_validator(mode="after")
    def _hmo_needs_provider(self) -> "PayerContext":
        if self.payer_type == PayerType.HMO and not self.hmo_provider_id:
            raise ValueError("HMO payer context requires hmo_provider_id")
        return self

    @property
    def is_hmo(self) -> bool:
        return self.payer_type == PayerType.HMO
