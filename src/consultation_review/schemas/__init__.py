"""Consultation review schemas for pricing, bundles, justification and compliance."""

from .catalog import (
    BundleLabItem,
    BundleMedItem,
    ConflictRule,
    HMORule,
    PayerContract,
    PriorResult,
    ProtocolBundle,
    RuleCondition,
    RuleField,
    RuleSeverity,
    ServiceCatalogItem,
)
from .common import (
    CoverageStatus,
    PayerContext,
    PayerType,
    ServiceCategory,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
)
from .consultation import (
    BundleDeselectionRecord,
    ConsultationContext,
    ConsultationDiagnosis,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    ConsultationStatus,
    JustificationEntry,
    OrderMetadata,
    TriggerType,
    VitalSigns,
)
from .financial import FinancialSummary, ResolvedPrice
from .review import (
    BundleApplication,
    BundleSuggestion,
    ChecklistItem,
    ComplianceReport,
    ConsultationReview,
    FinalizeOutcome,
    FinalizeSummary,
    HMOAlertResult,
    JustificationTriggerInfo,
    TriggerReport,
)

__all__ = [
    # Common
    "PayerType",
    "PayerContext",
    "ServiceCategory",
    "CoverageStatus",
    "ValidationSeverity",
    "ValidationStatus",
    "ValidationResult",
    # Reference data
    "ServiceCatalogItem",
    "PayerContract",
    "HMORule",
    "RuleField",
    "RuleCondition",
    "RuleSeverity",
    "ConflictRule",
    "PriorResult",
    "BundleLabItem",
    "BundleMedItem",
    "ProtocolBundle",
    # Consultation
    "ConsultationStatus",
    "TriggerType",
    "VitalSigns",
    "OrderMetadata",
    "ConsultationDiagnosis",
    "ConsultationLabOrder",
    "ConsultationPrescriptionItem",
    "BundleDeselectionRecord",
    "JustificationEntry",
    "ConsultationFormData",
    "ConsultationContext",
    # Pricing
    "ResolvedPrice",
    "FinancialSummary",
    # Review
    "BundleSuggestion",
    "BundleApplication",
    "JustificationTriggerInfo",
    "TriggerReport",
    "HMOAlertResult",
    "ChecklistItem",
    "ComplianceReport",
    "ConsultationReview",
    "FinalizeSummary",
    "FinalizeOutcome",
]
