"""Review checks run against a consultation before it is finalized."""

from ..schemas.common import ValidationResult, ValidationSeverity
from ..schemas.review import ComplianceReport, TriggerReport
from .compliance_checks import compliance_warnings, evaluate_compliance
from .justification_triggers import detect_triggers, is_resolved, trigger_warnings

__all__ = [
    "run_all_checks",
    "detect_triggers",
    "is_resolved",
    "evaluate_compliance",
    "trigger_warnings",
    "compliance_warnings",
]


def run_all_checks(
    trigger_report: TriggerReport, compliance: ComplianceReport
) -> list[ValidationResult]:
    """Collect review findings and return them sorted by severity.

    - Justification triggers: unresolved conflict and high-value orders
    - Compliance: failing provider rules and checklist items

    Results are sorted by severity (HIGH first, then MEDIUM, LOW, INFO).
    """
    results: list[ValidationResult] = []

    results.extend(trigger_warnings(trigger_report))
    results.extend(compliance_warnings(compliance))

    # Sort by severity: HIGH > MEDIUM > LOW > INFO
    severity_order = {
        ValidationSeverity.HIGH: 0,
        ValidationSeverity.MEDIUM: 1,
        ValidationSeverity.LOW: 2,
        ValidationSeverity.INFO: 3,
    }
    results.sort(key=lambda r: severity_order.get(r.severity, 4))

    return results
