"""Justification trigger detection for ordered labs and prescriptions.

An order needs a written clinical justification when it conflicts with the
patient's history or when it is high value for the payer:

- repeat_lab: same test completed recently with a normal outcome
- active_medication: same drug is still active from a prior prescription
- drug_lab_conflict: drug contradicted by a prior lab outcome (conflict rules)
- high_value: payer price above the category threshold, or a premium or
  restricted catalog item

Each order gets at most one trigger. Conflict outranks high value.
"""

import re
from datetime import date, timedelta

from ..config import JustificationSettings
from ..schemas.catalog import ConflictRule, PriorResult
from ..schemas.common import (
    ServiceCategory,
    ValidationResult,
    ValidationSeverity,
    ValidationStatus,
)
from ..schemas.consultation import (
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    JustificationEntry,
    TriggerType,
)
from ..schemas.financial import ResolvedPrice
from ..schemas.review import JustificationTriggerInfo, TriggerReport

_NEGATIVE_MARKERS = ("negative", "not detected")


def detect_triggers(
    form: ConsultationFormData,
    prices: list[ResolvedPrice],
    prior_results: list[PriorResult],
    conflict_rules: list[ConflictRule],
    settings: JustificationSettings | None = None,
    as_of: date | None = None,
) -> TriggerReport:
    """Detect active triggers and join them against written justifications.

    Triggers are listed lab orders first, then prescriptions, each in form
    order. Resolution is computed here on every call, never stored.
    """
    settings = settings or JustificationSettings()
    as_of = as_of or date.today()
    prices_by_order = {p.order_id: p for p in prices if p.order_id}

    triggers: list[JustificationTriggerInfo] = []

    for order in form.lab_orders:
        conflicts = _lab_conflicts(order, prior_results, settings, as_of)
        trigger = _classify(
            order.id,
            order.test_code,
            order.test_name,
            conflicts,
            prices_by_order.get(order.id),
            settings,
        )
        if trigger:
            triggers.append(trigger)

    for item in form.prescription_items:
        conflicts = _prescription_conflicts(item, prior_results, conflict_rules)
        trigger = _classify(
            item.id,
            item.catalog_id,
            item.drug_name,
            conflicts,
            prices_by_order.get(item.id),
            settings,
        )
        if trigger:
            triggers.append(trigger)

    unresolved = [
        t
        for t in triggers
        if not is_resolved(t.trigger_id, form.justifications, settings.min_length)
    ]
    return TriggerReport(triggers=triggers, unresolved=unresolved)


def is_resolved(
    trigger_id: str, justifications: list[JustificationEntry], min_length: int = 30
) -> bool:
    """True when a long-enough justification was written against ``trigger_id``."""
    return any(
        j.trigger_id == trigger_id and len(j.justification_text) >= min_length
        for j in justifications
    )


def trigger_warnings(report: TriggerReport) -> list[ValidationResult]:
    """Unresolved triggers as review findings."""
    return [
        ValidationResult(
            check_name=f"justification_{t.trigger_type.value}",
            status=ValidationStatus.ERROR,
            severity=ValidationSeverity.HIGH,
            detail=f"{t.item_name}: {t.trigger_description}",
            item_id=t.item_id,
            recommendation=f"Write a clinical justification for {t.item_name}.",
        )
        for t in report.unresolved
    ]


# --- Classification ---


def _classify(
    order_id: str,
    item_id: str,
    item_name: str,
    conflicts: list[str],
    price: ResolvedPrice | None,
    settings: JustificationSettings,
) -> JustificationTriggerInfo | None:
    high_value = _high_value_reasons(price, settings) if price else []

    if conflicts:
        trigger_type = TriggerType.CONFLICT
        trigger_id = f"cf-{order_id}"
        reasons = conflicts + high_value
    elif high_value:
        trigger_type = TriggerType.HIGH_VALUE
        trigger_id = f"hv-{order_id}"
        reasons = high_value
    else:
        return None

    return JustificationTriggerInfo(
        trigger_id=trigger_id,
        trigger_type=trigger_type,
        trigger_description=" ".join(reasons),
        item_id=price.item_id if price else item_id,
        item_name=item_name,
    )


def _high_value_reasons(price: ResolvedPrice, settings: JustificationSettings) -> list[str]:
    reasons: list[str] = []

    threshold = settings.threshold_for(price.category)
    if threshold is not None and price.payer_price > threshold:
        reasons.append(
            f"Price {price.payer_price:,.2f} exceeds the {price.category.value} "
            f"threshold of {threshold:,.2f}."
        )
    if price.is_premium:
        reasons.append(f"{price.item_name} is a premium service.")
    if price.is_restricted:
        reason = price.restriction_reason or "restricted item"
        reasons.append(f"{price.item_name} is restricted: {reason}.")

    return reasons


# --- Conflict checks ---


def _lab_conflicts(
    order: ConsultationLabOrder,
    prior_results: list[PriorResult],
    settings: JustificationSettings,
    as_of: date,
) -> list[str]:
    """Flag a lab repeated inside the window after a normal result."""
    window_start = as_of - timedelta(days=settings.repeat_window_days)
    conflicts: list[str] = []

    for result in prior_results:
        if result.category != ServiceCategory.LAB or result.completed_at is None:
            continue
        if not _same_item(result, order.test_code, order.test_name):
            continue
        completed = result.completed_at.date()
        if not window_start <= completed <= as_of or not _is_normal(result):
            continue

        outcome = result.outcome_summary or "normal"
        conflicts.append(
            f"{order.test_name} was already done on {completed.isoformat()} "
            f"({outcome}), within the last {settings.repeat_window_days} days."
        )

    return conflicts


def _prescription_conflicts(
    item: ConsultationPrescriptionItem,
    prior_results: list[PriorResult],
    conflict_rules: list[ConflictRule],
) -> list[str]:
    conflicts: list[str] = []

    for result in prior_results:
        if result.category != ServiceCategory.PHARMACY or not result.active:
            continue
        if _same_item(result, item.catalog_id, item.drug_name):
            conflicts.append(
                f"Patient already has an active prescription for {item.drug_name}."
            )

    drug = item.drug_name.lower()
    for rule in conflict_rules:
        if rule.drug_pattern.lower() not in drug:
            continue
        if any(
            result.category == ServiceCategory.LAB
            and _matches_lab_code(result, rule.lab_code)
            and _matches_outcome(result, rule.conflicting_result)
            for result in prior_results
        ):
            conflicts.append(rule.description)

    return conflicts


def _same_item(result: PriorResult, item_id: str, item_name: str) -> bool:
    if result.item_id == item_id:
        return True
    return bool(result.item_name) and result.item_name.lower() == item_name.lower()


def _matches_lab_code(result: PriorResult, lab_code: str) -> bool:
    code = lab_code.upper()
    if result.item_id.upper() == code:
        return True
    # Short codes appear inside names, e.g. "Malaria Parasite (MP)"
    return bool(
        result.item_name
        and re.search(rf"\b{re.escape(code)}\b", result.item_name.upper())
    )


def _is_normal(result: PriorResult) -> bool:
    if result.is_abnormal is not None:
        return not result.is_abnormal
    outcome = result.outcome_summary.lower()
    if "abnormal" in outcome:
        return False
    return "normal" in outcome or any(m in outcome for m in _NEGATIVE_MARKERS)


def _matches_outcome(result: PriorResult, expected: str) -> bool:
    expected = expected.lower()
    outcome = result.outcome_summary.lower()
    if expected == "negative":
        return any(m in outcome for m in _NEGATIVE_MARKERS)
    if expected == "normal":
        return _is_normal(result)
    return expected in outcome
