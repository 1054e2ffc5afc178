"""Unit tests for HMO compliance rules and the finalize checklist."""

import logging

import pytest

from consultation_review.reference import InMemoryReferenceData, load_reference_data
from consultation_review.schemas import (
    ConsultationDiagnosis,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    HMORule,
    RuleCondition,
    RuleField,
    RuleSeverity,
    TriggerReport,
    ValidationSeverity,
    VitalSigns,
)
from consultation_review.validators import run_all_checks
from consultation_review.validators.compliance_checks import (
    FIELD_EVALUATORS,
    NOT_RECORDED,
    evaluate_compliance,
)


@pytest.fixture(scope="module")
def rule_book():
    return load_reference_data()


def _make_form(codes=("B50.9",), labs=(), drugs=(), treatment_plan="ACT for 3 days") -> ConsultationFormData:
    return ConsultationFormData(
        selected_diagnoses=[
            ConsultationDiagnosis(code=c, is_primary=i == 0) for i, c in enumerate(codes)
        ],
        lab_orders=[
            ConsultationLabOrder(id=f"lo-{i}", test_code=code, test_name=name)
            for i, (code, name) in enumerate(labs)
        ],
        prescription_items=list(drugs),
        treatment_plan=treatment_plan,
    )


def _make_drug(**overrides) -> ConsultationPrescriptionItem:
    fields = {
        "id": "pi-0",
        "drug_name": "Artemether/Lumefantrine",
        "dosage": "80/480mg",
        "frequency": "Twice daily",
        "duration": "3 days",
        "quantity": 12,
    }
    fields.update(overrides)
    return ConsultationPrescriptionItem(**fields)


def _alerts_by_rule(report):
    return {a.rule.id: a for a in report.alerts}


MP = ("lab-002", "Malaria Parasite (MP)")


# ============================================================================
# PROVIDER RULES
# ============================================================================


class TestProviderRules:
    """Rules are scoped by provider and ICD prefix."""

    def test_malaria_claim_passes_nhia_rules(self, rule_book):
        form = _make_form(labs=[MP], drugs=[_make_drug()])
        report = evaluate_compliance("nhia-001", form, VitalSigns(temperature=38.6), rule_book)

        alerts = _alerts_by_rule(report)
        assert set(alerts) == {"hmo-rule-001", "hmo-rule-002"}
        assert alerts["hmo-rule-001"].passed
        assert alerts["hmo-rule-001"].actual_value == 38.6
        assert alerts["hmo-rule-002"].actual_value == "Present"
        assert report.passed

    def test_unrecorded_vital_fails(self, rule_book):
        report = evaluate_compliance("nhia-001", _make_form(labs=[MP]), None, rule_book)

        alert = _alerts_by_rule(report)["hmo-rule-001"]
        assert not alert.passed
        assert alert.actual_value == NOT_RECORDED

    def test_vital_below_threshold_fails(self, rule_book):
        report = evaluate_compliance(
            "nhia-001", _make_form(labs=[MP]), VitalSigns(temperature=37.2), rule_book
        )

        alert = _alerts_by_rule(report)["hmo-rule-001"]
        assert not alert.passed
        assert alert.actual_value == 37.2

    def test_missing_lab_order(self, rule_book):
        report = evaluate_compliance("hyg-001", _make_form(), None, rule_book)

        alert = _alerts_by_rule(report)["hmo-rule-003"]
        assert not alert.passed
        assert alert.actual_value == "Not ordered"
        assert [a.rule.id for a in report.failing_alerts] == ["hmo-rule-003"]

    def test_rule_scoped_by_icd_prefix(self, rule_book):
        report = evaluate_compliance("nhia-001", _make_form(codes=["I10"]), None, rule_book)
        assert report.alerts == []

    def test_lte_condition(self, rule_book):
        rule = HMORule(
            id="r-lte",
            provider_id="hmo-x",
            provider_name="HMO X",
            field=RuleField.PULSE,
            condition=RuleCondition.LTE,
            value=100,
            icd_codes=["B50"],
            message="Pulse must be documented below 100.",
        )
        book = InMemoryReferenceData(rules=[rule])
        form = _make_form()

        assert evaluate_compliance("hmo-x", form, VitalSigns(pulse=88), book).alerts[0].passed
        assert not evaluate_compliance("hmo-x", form, VitalSigns(pulse=120), book).alerts[0].passed

    def test_non_numeric_vital_threshold_fails_rule(self, caplog):
        rule = HMORule(
            id="r-bad",
            provider_id="hmo-x",
            provider_name="HMO X",
            field=RuleField.TEMPERATURE,
            condition=RuleCondition.GTE,
            value="high",
            icd_codes=["B50"],
            message="Temperature must be high.",
        )
        book = InMemoryReferenceData(rules=[rule])

        with caplog.at_level(logging.WARNING):
            report = evaluate_compliance("hmo-x", _make_form(), VitalSigns(temperature=39), book)

        assert not report.alerts[0].passed
        assert report.alerts[0].actual_value == 39
        assert "r-bad" in caplog.text

    def test_present_condition_on_vital(self):
        rule = HMORule(
            id="r-present",
            provider_id="hmo-x",
            provider_name="HMO X",
            field=RuleField.WEIGHT,
            condition=RuleCondition.PRESENT,
            value="recorded",
            icd_codes=["B50"],
            message="Weight must be recorded.",
        )
        book = InMemoryReferenceData(rules=[rule])
        form = _make_form()

        assert evaluate_compliance("hmo-x", form, VitalSigns(weight=70), book).alerts[0].passed
        assert not evaluate_compliance("hmo-x", form, VitalSigns(), book).alerts[0].passed

    def test_systolic_rule(self, rule_book):
        form = _make_form(codes=["I10"])
        report = evaluate_compliance(
            "axa-001", form, VitalSigns(blood_pressure_systolic=150), rule_book
        )
        assert _alerts_by_rule(report)["hmo-rule-004"].passed

    def test_no_provider_means_no_rules(self, rule_book):
        report = evaluate_compliance(None, _make_form(), None, rule_book)

        assert report.alerts == []
        assert len(report.checklist) == 4

    def test_prescription_rule_from_data(self):
        rule = HMORule(
            id="r-rx",
            provider_id="hmo-x",
            provider_name="HMO X",
            field=RuleField.PRESCRIPTION,
            condition=RuleCondition.PRESENT,
            value="artemether",
            icd_codes=["B50"],
            message="Antimalarial required.",
            severity=RuleSeverity.ERROR,
        )
        book = InMemoryReferenceData(rules=[rule])

        with_drug = evaluate_compliance("hmo-x", _make_form(drugs=[_make_drug()]), None, book)
        without = evaluate_compliance("hmo-x", _make_form(), None, book)

        assert with_drug.alerts[0].passed
        assert not without.alerts[0].passed
        assert without.alerts[0].actual_value == "Not prescribed"

    def test_every_rule_field_has_an_evaluator(self):
        assert set(FIELD_EVALUATORS) == set(RuleField)


# ============================================================================
# CHECKLIST
# ============================================================================


class TestChecklist:
    """The fixed four-item checklist."""

    def test_complete_consultation_passes(self, rule_book):
        form = _make_form(labs=[MP], drugs=[_make_drug()])
        report = evaluate_compliance(None, form, None, rule_book)

        assert [c.check_name for c in report.checklist] == [
            "primary_diagnosis",
            "lab_orders",
            "prescriptions_complete",
            "treatment_plan",
        ]
        assert report.checklist_failures == []

    def test_failures(self, rule_book):
        form = _make_form(codes=[], drugs=[_make_drug(quantity=0)], treatment_plan="   ")
        report = evaluate_compliance(None, form, None, rule_book)

        assert [c.check_name for c in report.checklist_failures] == [
            "primary_diagnosis",
            "lab_orders",
            "prescriptions_complete",
            "treatment_plan",
        ]
        assert not report.passed

    def test_prescription_missing_dosage(self, rule_book):
        form = _make_form(labs=[MP], drugs=[_make_drug(dosage="")])
        report = evaluate_compliance(None, form, None, rule_book)

        assert [c.check_name for c in report.checklist_failures] == ["prescriptions_complete"]


# ============================================================================
# WARNINGS
# ============================================================================


class TestComplianceWarnings:
    def test_failures_become_sorted_warnings(self, rule_book):
        form = _make_form(codes=["I10"], treatment_plan="")
        report = evaluate_compliance("axa-001", form, None, rule_book)

        results = run_all_checks(TriggerReport(), report)

        assert [r.check_name for r in results] == [
            "hmo_rule_blood_pressure_systolic",
            "lab_orders",
            "treatment_plan",
        ]
        assert results[0].severity == ValidationSeverity.MEDIUM
        assert "Not recorded" in results[0].detail
        assert all(r.severity == ValidationSeverity.LOW for r in results[1:])

    def test_error_rule_is_high_severity(self, rule_book):
        report = evaluate_compliance("hyg-001", _make_form(), None, rule_book)
        results = run_all_checks(TriggerReport(), report)

        assert results[0].check_name == "hmo_rule_lab_order"
        assert results[0].severity == ValidationSeverity.HIGH
