"""Consultation encounter schemas: the aggregate edited during one encounter."""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import PayerContext


class ConsultationStatus(str, Enum):
    """Finalization state of an encounter."""

    DRAFT = "draft"
    READY_TO_REVIEW = "ready_to_review"
    FINALIZED = "finalized"


class TriggerType(str, Enum):
    """Reason an order needs a written clinical justification."""

    CONFLICT = "conflict"
    HIGH_VALUE = "high_value"


class VitalSigns(BaseModel):
    """Most recent vitals recorded for the encounter."""

    blood_pressure_systolic: float | None = None
    blood_pressure_diastolic: float | None = None
    temperature: float | None = None
    pulse: float | None = None
    respiratory_rate: float | None = None
    oxygen_saturation: float | None = None
    weight: float | None = None
    height: float | None = None
    recorded_at: datetime | None = None


class OrderMetadata(BaseModel):
    """Provenance attached to an order line."""

    model_config = ConfigDict(frozen=True)

    linked_diagnosis: str | None = None
    is_from_bundle: bool = False
    bundle_id: str | None = None
    original_price_at_order: float | None = None
    justification: str | None = None


class ConsultationDiagnosis(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    description: str = ""
    is_primary: bool = False


class ConsultationLabOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    test_code: str
    test_name: str
    priority: str = "routine"
    notes: str = ""
    metadata: OrderMetadata = OrderMetadata()


class ConsultationPrescriptionItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    drug_name: str
    drug_code: str | None = None
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    quantity: int = 0
    instructions: str = ""
    metadata: OrderMetadata = OrderMetadata()

    @property
    def catalog_id(self) -> str:
        """Catalog identity used for pricing; falls back to the drug name."""
        return self.drug_code or self.drug_name


class BundleDeselectionRecord(BaseModel):
    """Audit entry for a partially accepted bundle. Append-only."""

    model_config = ConfigDict(frozen=True)

    bundle_id: str
    bundle_name: str
    excluded_test_codes: tuple[str, ...] = ()
    excluded_drug_names: tuple[str, ...] = ()
    timestamp: datetime
    clinician_id: str


class JustificationEntry(BaseModel):
    """Free-text clinical rationale written against a trigger id."""

    model_config = ConfigDict(frozen=True)

    trigger_id: str
    trigger_type: TriggerType
    trigger_description: str = ""
    justification_text: str
    item_id: str
    item_name: str = ""
    timestamp: datetime


class ConsultationFormData(BaseModel):
    """Snapshot of one in-progress encounter.

    Snapshots are never edited in place: every user action goes through
    ``consultation_review.session`` and yields a new snapshot.
    """

    model_config = ConfigDict(frozen=True)

    consultation_id: str | None = None
    patient_id: str | None = None
    clinician_id: str | None = None
    # SOAP
    chief_complaint: str = ""
    history_of_present_illness: str = ""
    physical_examination: str = ""
    selected_diagnoses: list[ConsultationDiagnosis] = []
    treatment_plan: str = ""
    # Orders
    lab_orders: list[ConsultationLabOrder] = []
    prescription_items: list[ConsultationPrescriptionItem] = []
    follow_up_date: date | None = None
    notes: str = ""
    # Audit and session state
    bundle_deselections: list[BundleDeselectionRecord] = []
    justifications: list[JustificationEntry] = []
    dismissed_bundle_ids: list[str] = []
    applied_bundle_ids: list[str] = []
    status: ConsultationStatus = ConsultationStatus.DRAFT
    finalized_at: datetime | None = None

    @model_validator(mode="after")
    def _single_primary_diagnosis(self) -> "ConsultationFormData":
        primaries = [d.code for d in self.selected_diagnoses if d.is_primary]
        if len(primaries) > 1:
            raise ValueError(
                f"Only one diagnosis may be primary, got {', '.join(primaries)}"
            )
        return self

    @property
    def primary_diagnosis(self) -> ConsultationDiagnosis | None:
        return next((d for d in self.selected_diagnoses if d.is_primary), None)

    @property
    def is_finalized(self) -> bool:
        return self.status == ConsultationStatus.FINALIZED


class ConsultationContext(BaseModel):
    """Everything besides the form that a review of the encounter needs."""

    payer: PayerContext
    vitals: VitalSigns | None = None
    as_of: date = Field(default_factory=date.today)
