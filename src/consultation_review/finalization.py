"""Consultation review and the finalize gate.

``review_consultation`` recomputes every derived value from one snapshot.
The gate moves a consultation draft -> ready_to_review -> finalized, and
refuses to leave draft while any justification trigger is unresolved.
"""

import logging
from datetime import datetime

from .bundles import suggest_for_form
from .config import ReviewConfig
from .exceptions import ConsultationLockedError, FinalizationStateError
from .pricing import aggregate, resolve_prices
from .reference import ReferenceData
from .schemas.common import ValidationResult, ValidationSeverity, ValidationStatus
from .schemas.consultation import (
    ConsultationContext,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    ConsultationStatus,
)
from .schemas.financial import ResolvedPrice
from .schemas.review import ConsultationReview, FinalizeOutcome, FinalizeSummary
from .session import _editable, evolve
from .validators import detect_triggers, evaluate_compliance, run_all_checks

logger = logging.getLogger(__name__)


def review_consultation(
    form: ConsultationFormData,
    context: ConsultationContext,
    reference: ReferenceData,
    config: ReviewConfig | None = None,
) -> ConsultationReview:
    """Resolve prices, suggest bundles, detect triggers and check compliance."""
    config = config or ReviewConfig()

    prices = resolve_prices(form, context.payer, reference, reference, config.pricing)
    prior_results = reference.prior_results(form.patient_id) if form.patient_id else []
    provider_id = context.payer.hmo_provider_id if context.payer.is_hmo else None

    return ConsultationReview(
        resolved_prices=prices,
        financial_summary=aggregate(prices),
        bundle_suggestions=suggest_for_form(form, reference.list_bundles()),
        trigger_report=detect_triggers(
            form,
            prices,
            prior_results,
            reference.list_conflict_rules(),
            config.justification,
            context.as_of,
        ),
        compliance=evaluate_compliance(provider_id, form, context.vitals, reference),
    )


def save_draft(form: ConsultationFormData) -> ConsultationFormData:
    """Park the consultation in draft, withdrawing any pending review."""
    _editable(form)
    if form.status == ConsultationStatus.DRAFT:
        return form
    return evolve(form, status=ConsultationStatus.DRAFT)


def attempt_finalize(
    form: ConsultationFormData,
    context: ConsultationContext,
    reference: ReferenceData,
    config: ReviewConfig | None = None,
    review: ConsultationReview | None = None,
) -> FinalizeOutcome:
    """Gate the move to ready_to_review on every trigger being justified.

    A blocked outcome carries the first unresolved trigger in detection
    order; the caller prompts for its justification and tries again.
    ``review`` must have been computed from this same ``form``.
    """
    _editable(form)
    config = config or ReviewConfig()
    if review is None:
        review = review_consultation(form, context, reference, config)

    report = review.trigger_report
    if report.unresolved:
        logger.info(
            "Finalize blocked for consultation %s: %d unresolved trigger(s), next %s",
            form.consultation_id,
            report.unresolved_count,
            report.unresolved[0].trigger_id,
        )
        return FinalizeOutcome(
            blocked=True,
            trigger=report.unresolved[0],
            form=save_draft(form),
        )

    summary = build_summary(form, context, review, config)
    logger.info(
        "Consultation %s ready to review: total %.2f, %d warning(s)",
        form.consultation_id,
        summary.financial_summary.grand_total,
        len(summary.warnings),
    )
    return FinalizeOutcome(
        blocked=False,
        summary=summary,
        form=evolve(form, status=ConsultationStatus.READY_TO_REVIEW),
    )


def confirm_finalize(
    form: ConsultationFormData,
    context: ConsultationContext,
    reference: ReferenceData,
    config: ReviewConfig | None = None,
    finalized_at: datetime | None = None,
    review: ConsultationReview | None = None,
) -> FinalizeOutcome:
    """Finalize a reviewed consultation after re-checking the gate.

    Every order is stamped with the primary diagnosis, its payer price at
    this moment and the justification written for it.
    """
    if form.is_finalized:
        raise ConsultationLockedError(
            "Consultation is already finalized",
            detail={"consultation_id": form.consultation_id},
        )
    if form.status != ConsultationStatus.READY_TO_REVIEW:
        raise FinalizationStateError(
            f"Cannot finalize a consultation in {form.status.value}; "
            "attempt_finalize must succeed first",
            detail={"consultation_id": form.consultation_id, "status": form.status.value},
        )

    if review is None:
        review = review_consultation(form, context, reference, config)
    outcome = attempt_finalize(form, context, reference, config, review=review)
    if outcome.blocked:
        # New triggers appeared since the review
        return outcome

    lab_orders, prescription_items = _stamp_orders(form, review)
    logger.info("Consultation %s finalized", form.consultation_id)
    return outcome.model_copy(
        update={
            "form": evolve(
                form,
                status=ConsultationStatus.FINALIZED,
                finalized_at=finalized_at or datetime.now(),
                lab_orders=lab_orders,
                prescription_items=prescription_items,
            )
        }
    )


def _stamp_orders(
    form: ConsultationFormData, review: ConsultationReview
) -> tuple[list[ConsultationLabOrder], list[ConsultationPrescriptionItem]]:
    primary = form.primary_diagnosis
    primary_code = primary.code if primary else None
    prices = {p.order_id: p for p in review.resolved_prices if p.order_id}

    def stamp(order):
        price = prices.get(order.id)
        texts = [
            j.justification_text
            for j in form.justifications
            if j.trigger_id in (f"cf-{order.id}", f"hv-{order.id}")
        ]
        metadata = order.metadata.model_copy(
            update={
                "linked_diagnosis": order.metadata.linked_diagnosis or primary_code,
                "original_price_at_order": price.payer_price if price else None,
                "justification": "\n".join(texts) or None,
            }
        )
        return order.model_copy(update={"metadata": metadata})

    return (
        [stamp(o) for o in form.lab_orders],
        [stamp(p) for p in form.prescription_items],
    )


# --- Summary ---


def build_summary(
    form: ConsultationFormData,
    context: ConsultationContext,
    review: ConsultationReview,
    config: ReviewConfig,
) -> FinalizeSummary:
    show_checklist = context.payer.is_hmo or config.compliance.show_checklist_for_non_hmo

    warnings = run_all_checks(review.trigger_report, review.compliance)
    warnings.extend(_pricing_warnings(review.resolved_prices))

    summary = FinalizeSummary(
        primary_diagnosis=form.primary_diagnosis,
        diagnoses=form.selected_diagnoses,
        lab_tests=[o.test_name for o in form.lab_orders],
        prescriptions=[
            f"{p.drug_name} {p.dosage}".strip() for p in form.prescription_items
        ],
        follow_up=form.follow_up_date.isoformat() if form.follow_up_date else None,
        financial_summary=review.financial_summary,
        checklist=review.compliance.checklist if show_checklist else [],
        failing_rules=review.compliance.failing_alerts,
        warnings=warnings,
        unresolved_justifications=review.trigger_report.unresolved_count,
    )
    return summary.model_copy(
        update={"narrative": _render_narrative(summary, config.pricing.currency)}
    )


def _pricing_warnings(prices: list[ResolvedPrice]) -> list[ValidationResult]:
    results: list[ValidationResult] = []

    for price in prices:
        if price.catalog_missing:
            results.append(
                ValidationResult(
                    check_name="catalog_missing",
                    status=ValidationStatus.WARNING,
                    severity=ValidationSeverity.MEDIUM,
                    detail=f"{price.item_name} is not in the service catalog and was priced at 0",
                    item_id=price.item_id,
                    recommendation="Ask billing to add the item to the tariff.",
                )
            )
        if price.copay_ambiguous:
            results.append(
                ValidationResult(
                    check_name="copay_ambiguous",
                    status=ValidationStatus.WARNING,
                    severity=ValidationSeverity.MEDIUM,
                    detail=(
                        f"{price.item_name} is partially covered but the contract has no "
                        f"copay terms; patient is charged the full {price.payer_price:,.2f}"
                    ),
                    item_id=price.item_id,
                    recommendation="Confirm the copay with the HMO before billing.",
                )
            )

    return results


def _render_narrative(summary: FinalizeSummary, currency: str) -> str:
    lines: list[str] = []

    primary = summary.primary_diagnosis
    if primary:
        line = f"Primary diagnosis: {primary.code} {primary.description}".rstrip()
        others = len(summary.diagnoses) - 1
        if others > 0:
            line += f" (+{others} more)"
        lines.append(line)
    else:
        lines.append("No primary diagnosis recorded.")

    if summary.lab_tests:
        lines.append(f"Lab tests: {', '.join(summary.lab_tests)}")
    if summary.prescriptions:
        lines.append(f"Prescriptions: {', '.join(summary.prescriptions)}")
    if summary.follow_up:
        lines.append(f"Follow-up: {summary.follow_up}")

    money = summary.financial_summary
    lines.append(
        f"Total: {currency} {money.grand_total:,.2f} "
        f"(patient {currency} {money.patient_total:,.2f}, "
        f"HMO {currency} {money.hmo_total:,.2f})"
    )

    lines.extend(_build_action_list(summary.warnings))
    return "\n".join(lines)


def _build_action_list(warnings: list[ValidationResult]) -> list[str]:
    """Build prioritized action list from review findings."""
    actions: list[str] = []

    for result in warnings:
        if result.severity == ValidationSeverity.HIGH and result.recommendation:
            actions.append(f"URGENT: {result.recommendation}")
        elif result.severity == ValidationSeverity.MEDIUM and result.recommendation:
            actions.append(f"REVIEW: {result.recommendation}")

    return actions
