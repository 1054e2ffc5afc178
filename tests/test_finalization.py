"""Unit tests for consultation review and the finalize gate."""

from datetime import date, datetime

import pytest

from consultation_review.config import ComplianceSettings, ReviewConfig
from consultation_review.exceptions import ConsultationLockedError, FinalizationStateError
from consultation_review.finalization import (
    attempt_finalize,
    confirm_finalize,
    review_consultation,
    save_draft,
)
from consultation_review.reference import load_reference_data
from consultation_review.schemas import (
    ConsultationContext,
    ConsultationDiagnosis,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationStatus,
    PayerContext,
    PayerType,
    VitalSigns,
)
from consultation_review.session import justify

AS_OF = date(2026, 10, 19)
MP = ("lab-002", "Malaria Parasite (MP)")
RATIONALE = "Persistent fever and rigors despite the negative smear last week."


@pytest.fixture(scope="module")
def reference():
    return load_reference_data()


def _make_form(
    labs=(MP,),
    codes=(("B50.9", "Falciparum malaria"),),
    patient_id="pat-001",
    **fields,
) -> ConsultationFormData:
    return ConsultationFormData(
        consultation_id="cons-1",
        patient_id=patient_id,
        selected_diagnoses=[
            ConsultationDiagnosis(code=code, description=desc, is_primary=i == 0)
            for i, (code, desc) in enumerate(codes)
        ],
        lab_orders=[
            ConsultationLabOrder(id=f"lo-{i}", test_code=code, test_name=name)
            for i, (code, name) in enumerate(labs)
        ],
        treatment_plan="Oral ACT, review in one week",
        **fields,
    )


def _make_context(provider_id=None, vitals=None) -> ConsultationContext:
    if provider_id:
        payer = PayerContext(payer_type=PayerType.HMO, hmo_provider_id=provider_id)
    else:
        payer = PayerContext()
    return ConsultationContext(payer=payer, vitals=vitals, as_of=AS_OF)


def _justify_all(form, context, reference):
    """Write a rationale for every active trigger."""
    review = review_consultation(form, context, reference)
    for trigger in review.trigger_report.triggers:
        form = justify(form, trigger, RATIONALE)
    return form


# ============================================================================
# REVIEW
# ============================================================================


class TestReviewConsultation:
    """Every derived value comes from one snapshot."""

    def test_review_for_hmo_malaria(self, reference):
        context = _make_context("hyg-001", VitalSigns(temperature=38.4))
        review = review_consultation(_make_form(), context, reference)

        assert review.resolved_prices[0].payer_price == 2000
        assert review.financial_summary.patient_total == 300
        assert review.financial_summary.hmo_total == 1700
        assert [s.bundle.id for s in review.bundle_suggestions] == ["bundle-malaria"]
        assert [t.trigger_id for t in review.trigger_report.unresolved] == ["cf-lo-0"]
        assert review.compliance.provider_id == "hyg-001"
        assert review.compliance.passed

    def test_cash_review_has_no_provider_rules(self, reference):
        review = review_consultation(_make_form(), _make_context(), reference)

        assert review.compliance.provider_id is None
        assert review.compliance.alerts == []
        assert len(review.compliance.checklist) == 4


# ============================================================================
# ATTEMPT
# ============================================================================


class TestAttemptFinalize:
    """Finalization is blocked until every trigger is justified."""

    def test_blocked_on_first_unresolved_trigger(self, reference):
        form = _make_form(labs=[MP, ("lab-021", "CT Scan - Head")])
        outcome = attempt_finalize(form, _make_context(), reference)

        assert outcome.blocked
        assert outcome.trigger.trigger_id == "cf-lo-0"
        assert outcome.summary is None
        assert outcome.form.status == ConsultationStatus.DRAFT

    def test_short_justification_still_blocks(self, reference):
        context = _make_context()
        form = _make_form()
        trigger = review_consultation(form, context, reference).trigger_report.triggers[0]
        form = justify(form, trigger, "Fever persists")

        outcome = attempt_finalize(form, context, reference)
        assert outcome.blocked

    def test_unblocked_moves_to_ready_to_review(self, reference):
        context = _make_context()
        form = _justify_all(_make_form(), context, reference)

        outcome = attempt_finalize(form, context, reference)

        assert not outcome.blocked
        assert outcome.form.status == ConsultationStatus.READY_TO_REVIEW
        summary = outcome.summary
        assert summary.can_confirm
        assert summary.unresolved_justifications == 0
        assert summary.primary_diagnosis.code == "B50.9"
        assert summary.lab_tests == ["Malaria Parasite (MP)"]
        assert summary.financial_summary.grand_total == 2500
        assert "Primary diagnosis: B50.9 Falciparum malaria" in summary.narrative
        assert "Total: NGN 2,500.00" in summary.narrative

    def test_never_unblocked_with_unresolved_triggers(self, reference):
        context = _make_context("hyg-001")
        forms = [
            _make_form(labs=[]),
            _make_form(),
            _make_form(labs=[MP, ("lab-017", "Ultrasound - Abdominal")]),
            _justify_all(_make_form(), context, reference),
        ]
        for form in forms:
            outcome = attempt_finalize(form, context, reference)
            unresolved = review_consultation(form, context, reference).trigger_report
            assert outcome.blocked == (unresolved.unresolved_count > 0)

    def test_failing_rules_do_not_block(self, reference):
        context = _make_context("hyg-001")
        form = _make_form(labs=[("lab-001", "Full Blood Count (FBC)")])

        outcome = attempt_finalize(form, context, reference)

        assert not outcome.blocked
        assert [a.rule.id for a in outcome.summary.failing_rules] == ["hmo-rule-003"]
        assert outcome.summary.warnings[0].check_name == "hmo_rule_lab_order"
        assert any(line.startswith("URGENT:") for line in outcome.summary.narrative.splitlines())

    def test_ambiguous_copay_is_a_warning(self, reference):
        context = _make_context("aii-001")
        form = _make_form(
            labs=[("lab-006", "Fasting Blood Sugar (FBS)"), ("lab-007", "HbA1c")],
            codes=[("E11.9", "Type 2 diabetes")],
            patient_id="pat-003",
        )

        outcome = attempt_finalize(form, context, reference)

        assert not outcome.blocked
        checks = [w.check_name for w in outcome.summary.warnings]
        assert "copay_ambiguous" in checks
        assert outcome.summary.financial_summary.flagged_items == ["lab-007"]

    def test_checklist_hidden_for_non_hmo_when_configured(self, reference):
        config = ReviewConfig(compliance=ComplianceSettings(show_checklist_for_non_hmo=False))
        form = _make_form(labs=[("lab-001", "Full Blood Count (FBC)")])

        outcome = attempt_finalize(form, _make_context(), reference, config)

        assert outcome.summary.checklist == []


# ============================================================================
# CONFIRM
# ============================================================================


class TestConfirmFinalize:
    """ready_to_review -> finalized, which is terminal."""

    def _ready_form(self, reference, context):
        form = _justify_all(_make_form(), context, reference)
        return attempt_finalize(form, context, reference).form

    def test_confirm_finalizes(self, reference):
        context = _make_context()
        stamp = datetime(2026, 10, 19, 12, 30)
        outcome = confirm_finalize(
            self._ready_form(reference, context), context, reference, finalized_at=stamp
        )

        assert not outcome.blocked
        assert outcome.form.status == ConsultationStatus.FINALIZED
        assert outcome.form.finalized_at == stamp

    def test_confirm_stamps_order_metadata(self, reference):
        context = _make_context()
        ready = self._ready_form(reference, context)
        assert ready.lab_orders[0].metadata.original_price_at_order is None

        final = confirm_finalize(ready, context, reference).form

        metadata = final.lab_orders[0].metadata
        assert metadata.linked_diagnosis == "B50.9"
        assert metadata.original_price_at_order == 2500
        assert metadata.justification == RATIONALE
        assert not metadata.is_from_bundle

    def test_stamped_diagnosis_keeps_existing_link(self, reference):
        context = _make_context()
        form = _justify_all(_make_form(), context, reference)
        order = form.lab_orders[0]
        linked = order.model_copy(
            update={"metadata": order.metadata.model_copy(update={"linked_diagnosis": "B54"})}
        )
        ready = attempt_finalize(
            form.model_copy(update={"lab_orders": [linked]}), context, reference
        ).form

        final = confirm_finalize(ready, context, reference).form

        assert final.lab_orders[0].metadata.linked_diagnosis == "B54"

    def test_confirm_from_draft_is_rejected(self, reference):
        with pytest.raises(FinalizationStateError) as exc_info:
            confirm_finalize(_make_form(), _make_context(), reference)
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_finalized_is_terminal(self, reference):
        context = _make_context()
        final = confirm_finalize(self._ready_form(reference, context), context, reference).form

        with pytest.raises(ConsultationLockedError):
            confirm_finalize(final, context, reference)
        with pytest.raises(ConsultationLockedError):
            attempt_finalize(final, context, reference)
        with pytest.raises(ConsultationLockedError):
            save_draft(final)

    def test_new_trigger_sends_back_to_draft(self, reference):
        form = _make_form(
            labs=[("lab-021", "CT Scan - Head")],
            status=ConsultationStatus.READY_TO_REVIEW,
        )
        outcome = confirm_finalize(form, _make_context(), reference)

        assert outcome.blocked
        assert outcome.trigger.trigger_id == "hv-lo-0"
        assert outcome.form.status == ConsultationStatus.DRAFT


class TestSaveDraft:
    def test_ready_form_returns_to_draft(self):
        form = _make_form(status=ConsultationStatus.READY_TO_REVIEW)
        assert save_draft(form).status == ConsultationStatus.DRAFT

    def test_draft_is_unchanged(self):
        form = _make_form()
        assert save_draft(form) is form
