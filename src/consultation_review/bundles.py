"""Protocol bundle suggestion and application.

A bundle is suggested when one of its ICD codes matches a current diagnosis
and at least one of its constituents is not yet ordered. Lab identity is the
test code; medication identity is the case-insensitive drug name.
"""

import logging
from collections.abc import Iterable
from datetime import datetime

from .schemas.catalog import BundleLabItem, BundleMedItem, ProtocolBundle
from .schemas.consultation import (
    BundleDeselectionRecord,
    ConsultationDiagnosis,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    OrderMetadata,
)
from .schemas.review import BundleApplication, BundleSuggestion
from .session import _edit, new_order_id

logger = logging.getLogger(__name__)


def _drug_key(name: str) -> str:
    return name.strip().lower()


def diagnosis_matches(bundle_codes: Iterable[str], diagnoses: list[ConsultationDiagnosis]) -> bool:
    """True when any bundle ICD code is a prefix of an attached diagnosis code."""
    codes = [d.code.upper() for d in diagnoses]
    return any(dc.startswith(bc.upper()) for bc in bundle_codes for dc in codes)


def missing_constituents(
    bundle: ProtocolBundle,
    lab_orders: list[ConsultationLabOrder],
    prescriptions: list[ConsultationPrescriptionItem],
) -> tuple[list[BundleLabItem], list[BundleMedItem]]:
    ordered_tests = {o.test_code for o in lab_orders}
    ordered_drugs = {_drug_key(p.drug_name) for p in prescriptions}
    missing_labs = [t for t in bundle.lab_tests if t.test_code not in ordered_tests]
    missing_meds = [
        m for m in bundle.medications if _drug_key(m.drug_name) not in ordered_drugs
    ]
    return missing_labs, missing_meds


def suggest_bundles(
    diagnoses: list[ConsultationDiagnosis],
    lab_orders: list[ConsultationLabOrder],
    prescriptions: list[ConsultationPrescriptionItem],
    bundles: list[ProtocolBundle],
    dismissed: Iterable[str] = (),
    applied: Iterable[str] = (),
) -> list[BundleSuggestion]:
    """Return candidate bundles in catalog order, each at most once."""
    suppressed = set(dismissed) | set(applied)
    seen: set[str] = set()
    suggestions: list[BundleSuggestion] = []

    for bundle in bundles:
        if bundle.id in seen or bundle.id in suppressed:
            continue
        if not diagnosis_matches(bundle.icd_codes, diagnoses):
            continue
        seen.add(bundle.id)

        missing_labs, missing_meds = missing_constituents(bundle, lab_orders, prescriptions)
        if not missing_labs and not missing_meds:
            continue

        suggestions.append(
            BundleSuggestion(
                bundle=bundle,
                missing_lab_tests=missing_labs,
                missing_medications=missing_meds,
            )
        )

    return suggestions


def suggest_for_form(
    form: ConsultationFormData, bundles: list[ProtocolBundle]
) -> list[BundleSuggestion]:
    return suggest_bundles(
        form.selected_diagnoses,
        form.lab_orders,
        form.prescription_items,
        bundles,
        dismissed=form.dismissed_bundle_ids,
        applied=form.applied_bundle_ids,
    )


def dismiss_bundle(form: ConsultationFormData, bundle_id: str) -> ConsultationFormData:
    """Suppress a bundle for the rest of this consultation session."""
    if bundle_id in form.dismissed_bundle_ids:
        return form
    return _edit(form, dismissed_bundle_ids=[*form.dismissed_bundle_ids, bundle_id])


def apply_bundle(
    form: ConsultationFormData,
    bundle: ProtocolBundle,
    clinician_id: str,
    excluded_test_codes: Iterable[str] = (),
    excluded_drug_names: Iterable[str] = (),
    timestamp: datetime | None = None,
    linked_diagnosis: str | None = None,
) -> BundleApplication:
    """Copy a bundle's selected constituents into the consultation's orders.

    Items already ordered are skipped. Excluding at least one constituent
    appends exactly one ``BundleDeselectionRecord``. Selecting nothing leaves
    the form unchanged.
    """
    excluded_tests = set(excluded_test_codes)
    excluded_drugs = {_drug_key(d) for d in excluded_drug_names}

    selected_labs = [t for t in bundle.lab_tests if t.test_code not in excluded_tests]
    selected_meds = [
        m for m in bundle.medications if _drug_key(m.drug_name) not in excluded_drugs
    ]

    if not selected_labs and not selected_meds:
        logger.info("Bundle %s applied with nothing selected; ignoring", bundle.id)
        return BundleApplication(form=form)

    if linked_diagnosis is None:
        primary = form.primary_diagnosis
        linked_diagnosis = primary.code if primary else None
    metadata = OrderMetadata(
        linked_diagnosis=linked_diagnosis,
        is_from_bundle=True,
        bundle_id=bundle.id,
    )

    ordered_tests = {o.test_code for o in form.lab_orders}
    ordered_drugs = {_drug_key(p.drug_name) for p in form.prescription_items}

    added_labs: list[ConsultationLabOrder] = []
    for t in selected_labs:
        if t.test_code in ordered_tests:
            continue
        ordered_tests.add(t.test_code)
        added_labs.append(
            ConsultationLabOrder(
                id=new_order_id("lorder"),
                test_code=t.test_code,
                test_name=t.test_name,
                priority=t.priority,
                notes=t.notes,
                metadata=metadata,
            )
        )

    added_meds: list[ConsultationPrescriptionItem] = []
    for m in selected_meds:
        key = _drug_key(m.drug_name)
        if key in ordered_drugs:
            continue
        ordered_drugs.add(key)
        added_meds.append(
            ConsultationPrescriptionItem(
                id=new_order_id("pitem"),
                drug_name=m.drug_name,
                drug_code=m.drug_code,
                dosage=m.dosage,
                frequency=m.frequency,
                duration=m.duration,
                quantity=m.quantity,
                instructions=m.instructions,
                metadata=metadata,
            )
        )

    deselection = None
    skipped_tests = tuple(t.test_code for t in bundle.lab_tests if t.test_code in excluded_tests)
    skipped_drugs = tuple(
        m.drug_name for m in bundle.medications if _drug_key(m.drug_name) in excluded_drugs
    )
    if skipped_tests or skipped_drugs:
        deselection = BundleDeselectionRecord(
            bundle_id=bundle.id,
            bundle_name=bundle.name,
            excluded_test_codes=skipped_tests,
            excluded_drug_names=skipped_drugs,
            timestamp=timestamp or datetime.now(),
            clinician_id=clinician_id,
        )

    updated = _edit(
        form,
        lab_orders=[*form.lab_orders, *added_labs],
        prescription_items=[*form.prescription_items, *added_meds],
        applied_bundle_ids=[*form.applied_bundle_ids, bundle.id],
        bundle_deselections=[*form.bundle_deselections, *([deselection] if deselection else [])],
    )

    return BundleApplication(
        form=updated,
        added_lab_orders=added_labs,
        added_prescriptions=added_meds,
        deselection=deselection,
    )
