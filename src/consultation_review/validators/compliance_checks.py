"""HMO compliance checks for a consultation before finalization.

Provider rules are data (``HMORule``); each rule's field kind selects an
evaluator from ``FIELD_EVALUATORS``. A rule applies when one of its ICD
prefixes matches an attached diagnosis.

Checklist (always evaluated, payer independent):
- primary_diagnosis: a primary diagnosis is recorded
- lab_orders: at least one lab test is ordered
- prescriptions_complete: every prescription has name, dosage, frequency,
  duration and a positive quantity
- treatment_plan: treatment plan is documented

Failures never block finalization; they surface as warnings.
"""

import logging
import re
from collections.abc import Callable

from ..reference import ComplianceRuleBook
from ..schemas.catalog import HMORule, RuleCondition, RuleField, RuleSeverity
from ..schemas.common import ValidationResult, ValidationSeverity, ValidationStatus
from ..schemas.consultation import ConsultationFormData, VitalSigns
from ..schemas.review import ChecklistItem, ComplianceReport, HMOAlertResult

logger = logging.getLogger(__name__)

NOT_RECORDED = "Not recorded"

RuleEvaluator = Callable[
    [HMORule, ConsultationFormData, VitalSigns | None],
    tuple[bool, str | float | None],
]


def evaluate_compliance(
    provider_id: str | None,
    form: ConsultationFormData,
    vitals: VitalSigns | None,
    rule_book: ComplianceRuleBook,
) -> ComplianceReport:
    """Evaluate the provider's applicable rules and the fixed checklist."""
    alerts: list[HMOAlertResult] = []

    if provider_id:
        for rule in rule_book.list_rules(provider_id):
            if not rule_applies(rule, form):
                continue
            evaluator = FIELD_EVALUATORS.get(rule.field)
            if evaluator is None:
                logger.warning("No evaluator for rule %s field %s", rule.id, rule.field)
                continue
            passed, actual = evaluator(rule, form, vitals)
            alerts.append(HMOAlertResult(rule=rule, passed=passed, actual_value=actual))

    return ComplianceReport(
        provider_id=provider_id,
        alerts=alerts,
        checklist=build_checklist(form),
    )


def rule_applies(rule: HMORule, form: ConsultationFormData) -> bool:
    codes = [d.code.upper() for d in form.selected_diagnoses]
    return any(dc.startswith(prefix.upper()) for prefix in rule.icd_codes for dc in codes)


def build_checklist(form: ConsultationFormData) -> list[ChecklistItem]:
    prescriptions_complete = all(
        p.drug_name and p.dosage and p.frequency and p.duration and p.quantity > 0
        for p in form.prescription_items
    )
    return [
        ChecklistItem(
            check_name="primary_diagnosis",
            label="Primary diagnosis present",
            passed=form.primary_diagnosis is not None,
        ),
        ChecklistItem(
            check_name="lab_orders",
            label="Lab tests ordered",
            passed=bool(form.lab_orders),
        ),
        ChecklistItem(
            check_name="prescriptions_complete",
            label="All prescriptions have required fields",
            passed=prescriptions_complete,
        ),
        ChecklistItem(
            check_name="treatment_plan",
            label="Treatment plan documented",
            passed=bool(form.treatment_plan.strip()),
        ),
    ]


def compliance_warnings(report: ComplianceReport) -> list[ValidationResult]:
    """Failing rules and checklist items as review findings."""
    results: list[ValidationResult] = []

    for alert in report.failing_alerts:
        rule = alert.rule
        detail = rule.message
        if alert.actual_value is not None:
            detail += f" Actual: {alert.actual_value}."
        results.append(
            ValidationResult(
                check_name=f"hmo_rule_{rule.field.value}",
                status=ValidationStatus.WARNING,
                severity=(
                    ValidationSeverity.HIGH
                    if rule.severity == RuleSeverity.ERROR
                    else ValidationSeverity.MEDIUM
                ),
                detail=detail,
                item_id=rule.id,
                recommendation=f"Address {rule.provider_name} requirement before claim submission.",
            )
        )

    for item in report.checklist_failures:
        results.append(
            ValidationResult(
                check_name=item.check_name,
                status=ValidationStatus.WARNING,
                severity=ValidationSeverity.LOW,
                detail=f"Checklist item not met: {item.label}",
            )
        )

    return results


# --- Field evaluators ---


def _evaluate_vital(
    rule: HMORule, form: ConsultationFormData, vitals: VitalSigns | None
) -> tuple[bool, str | float | None]:
    value = getattr(vitals, rule.field.value, None) if vitals else None
    if value is None:
        return False, NOT_RECORDED
    if rule.condition == RuleCondition.PRESENT:
        return True, value

    try:
        threshold = float(rule.value)
    except (TypeError, ValueError):
        logger.warning(
            "Rule %s has non-numeric threshold %r for %s; treating it as failed",
            rule.id,
            rule.value,
            rule.field.value,
        )
        return False, value

    if rule.condition == RuleCondition.GTE:
        return value >= threshold, value
    if rule.condition == RuleCondition.LTE:
        return value <= threshold, value
    return value == threshold, value


def _evaluate_lab_order(
    rule: HMORule, form: ConsultationFormData, vitals: VitalSigns | None
) -> tuple[bool, str | float | None]:
    pattern = re.compile(rf"\b{re.escape(str(rule.value).upper())}\b")
    found = any(
        pattern.search(o.test_code.upper()) or pattern.search(o.test_name.upper())
        for o in form.lab_orders
    )
    return found, "Present" if found else "Not ordered"


def _evaluate_prescription(
    rule: HMORule, form: ConsultationFormData, vitals: VitalSigns | None
) -> tuple[bool, str | float | None]:
    needle = str(rule.value).lower()
    found = any(needle in p.drug_name.lower() for p in form.prescription_items)
    return found, "Prescribed" if found else "Not prescribed"


FIELD_EVALUATORS: dict[RuleField, RuleEvaluator] = {
    RuleField.TEMPERATURE: _evaluate_vital,
    RuleField.BLOOD_PRESSURE_SYSTOLIC: _evaluate_vital,
    RuleField.BLOOD_PRESSURE_DIASTOLIC: _evaluate_vital,
    RuleField.PULSE: _evaluate_vital,
    RuleField.RESPIRATORY_RATE: _evaluate_vital,
    RuleField.OXYGEN_SATURATION: _evaluate_vital,
    RuleField.WEIGHT: _evaluate_vital,
    RuleField.LAB_ORDER: _evaluate_lab_order,
    RuleField.PRESCRIPTION: _evaluate_prescription,
}
