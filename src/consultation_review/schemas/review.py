"""Derived review outputs: bundle suggestions, triggers, compliance and the finalize gate."""

from pydantic import BaseModel, computed_field

from .catalog import BundleLabItem, BundleMedItem, HMORule, ProtocolBundle
from .common import ValidationResult
from .consultation import (
    BundleDeselectionRecord,
    ConsultationDiagnosis,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    TriggerType,
)
from .financial import FinancialSummary, ResolvedPrice


class BundleSuggestion(BaseModel):
    """A candidate bundle with the constituents not yet ordered."""

    bundle: ProtocolBundle
    missing_lab_tests: list[BundleLabItem] = []
    missing_medications: list[BundleMedItem] = []


class BundleApplication(BaseModel):
    """Result of applying a bundle to a consultation snapshot."""

    form: ConsultationFormData
    added_lab_orders: list[ConsultationLabOrder] = []
    added_prescriptions: list[ConsultationPrescriptionItem] = []
    deselection: BundleDeselectionRecord | None = None

    @property
    def is_noop(self) -> bool:
        return not self.added_lab_orders and not self.added_prescriptions and self.deselection is None


class JustificationTriggerInfo(BaseModel):
    trigger_id: str
    trigger_type: TriggerType
    trigger_description: str
    item_id: str
    item_name: str


class TriggerReport(BaseModel):
    """Active justification triggers and which of them are still unresolved."""

    triggers: list[JustificationTriggerInfo] = []
    unresolved: list[JustificationTriggerInfo] = []

    @property
    def unresolved_count(self) -> int:
        return len(self.unresolved)

    @property
    def all_resolved(self) -> bool:
        return not self.unresolved


class HMOAlertResult(BaseModel):
    rule: HMORule
    passed: bool
    actual_value: str | float | None = None


class ChecklistItem(BaseModel):
    check_name: str
    label: str
    passed: bool


class ComplianceReport(BaseModel):
    """Provider rule outcomes plus the fixed structural checklist."""

    provider_id: str | None = None
    alerts: list[HMOAlertResult] = []
    checklist: list[ChecklistItem] = []

    @property
    def failing_alerts(self) -> list[HMOAlertResult]:
        return [a for a in self.alerts if not a.passed]

    @property
    def checklist_failures(self) -> list[ChecklistItem]:
        return [c for c in self.checklist if not c.passed]

    @property
    def passed(self) -> bool:
        return not self.failing_alerts and not self.checklist_failures


class ConsultationReview(BaseModel):
    """Every derived value for one consultation snapshot."""

    resolved_prices: list[ResolvedPrice] = []
    financial_summary: FinancialSummary = FinancialSummary()
    bundle_suggestions: list[BundleSuggestion] = []
    trigger_report: TriggerReport = TriggerReport()
    compliance: ComplianceReport = ComplianceReport()


class FinalizeSummary(BaseModel):
    """Confirmation summary shown before a consultation is finalized."""

    primary_diagnosis: ConsultationDiagnosis | None = None
    diagnoses: list[ConsultationDiagnosis] = []
    lab_tests: list[str] = []
    prescriptions: list[str] = []
    follow_up: str | None = None
    financial_summary: FinancialSummary = FinancialSummary()
    checklist: list[ChecklistItem] = []
    failing_rules: list[HMOAlertResult] = []
    warnings: list[ValidationResult] = []
    unresolved_justifications: int = 0
    narrative: str = ""

    @computed_field
    @property
    def can_confirm(self) -> bool:
        return self.unresolved_justifications == 0


class FinalizeOutcome(BaseModel):
    """Either a blocking trigger to resolve or a summary to confirm."""

    blocked: bool
    trigger: JustificationTriggerInfo | None = None
    summary: FinalizeSummary | None = None
    form: ConsultationFormData
