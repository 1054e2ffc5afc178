"""Reference data schemas: service catalog, payer contracts, rules and bundles."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .common import CoverageStatus, ServiceCategory


class ServiceCatalogItem(BaseModel):
    """Canonical billable service item with its cash price."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    category: ServiceCategory
    cash_price: float = Field(ge=0)
    active: bool = True
    is_premium: bool = False
    is_restricted: bool = False
    restriction_reason: str | None = None


class PayerContract(BaseModel):
    """Negotiated terms for one (payer, item) pair."""

    model_config = ConfigDict(frozen=True)

    payer_id: str
    item_id: str
    negotiated_price: float = Field(ge=0)
    coverage_tier: CoverageStatus = CoverageStatus.COVERED
    # Copay for partial coverage: a fraction of the payer price or a fixed amount
    copay_fraction: float | None = Field(default=None, ge=0, le=1)
    copay_amount: float | None = Field(default=None, ge=0)


class RuleSeverity(str, Enum):
    """Severity a payer attaches to one of its requirements."""

    WARNING = "warning"
    ERROR = "error"


class RuleField(str, Enum):
    """Encounter field an HMO rule inspects."""

    TEMPERATURE = "temperature"
    BLOOD_PRESSURE_SYSTOLIC = "blood_pressure_systolic"
    BLOOD_PRESSURE_DIASTOLIC = "blood_pressure_diastolic"
    PULSE = "pulse"
    RESPIRATORY_RATE = "respiratory_rate"
    OXYGEN_SATURATION = "oxygen_saturation"
    WEIGHT = "weight"
    LAB_ORDER = "lab_order"
    PRESCRIPTION = "prescription"


class RuleCondition(str, Enum):
    GTE = "gte"
    LTE = "lte"
    EQ = "eq"
    PRESENT = "present"


class HMORule(BaseModel):
    """Provider-authored clinical requirement, scoped to ICD code prefixes."""

    model_config = ConfigDict(frozen=True)

    id: str
    provider_id: str
    provider_name: str
    field: RuleField
    condition: RuleCondition
    value: float | str
    icd_codes: list[str] = []
    message: str
    severity: RuleSeverity = RuleSeverity.WARNING


class ConflictRule(BaseModel):
    """Drug that is contradicted by a prior lab outcome for the same patient."""

    model_config = ConfigDict(frozen=True)

    id: str
    drug_pattern: str
    lab_code: str
    conflicting_result: str
    description: str


class PriorResult(BaseModel):
    """Completed lab result or prescription from the patient's history."""

    model_config = ConfigDict(frozen=True)

    item_id: str
    item_name: str | None = None
    category: ServiceCategory = ServiceCategory.LAB
    completed_at: datetime | None = None
    outcome_summary: str = ""
    is_abnormal: bool | None = None
    # Prescriptions the patient is still taking
    active: bool = False


class BundleLabItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    test_code: str
    test_name: str
    priority: str = "routine"
    notes: str = ""


class BundleMedItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    drug_name: str
    drug_code: str | None = None
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    quantity: int = 0
    instructions: str = ""


class ProtocolBundle(BaseModel):
    """Diagnosis-linked standard order set."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    icd_codes: list[str]
    lab_tests: list[BundleLabItem] = []
    medications: list[BundleMedItem] = []
