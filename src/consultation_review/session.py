"""Snapshot transitions for an in-progress consultation.

Every helper takes a ``ConsultationFormData`` and returns a new one; the input
snapshot is left untouched. Finalized consultations are locked.
"""

import uuid
from datetime import datetime

from .exceptions import ConsultationLockedError
from .schemas.consultation import (
    ConsultationDiagnosis,
    ConsultationFormData,
    ConsultationLabOrder,
    ConsultationPrescriptionItem,
    ConsultationStatus,
    JustificationEntry,
)

_TEXT_FIELDS = {
    "chief_complaint",
    "history_of_present_illness",
    "physical_examination",
    "treatment_plan",
    "notes",
    "follow_up_date",
}


def new_consultation(**fields) -> ConsultationFormData:
    return ConsultationFormData(**fields)


def evolve(form: ConsultationFormData, **changes) -> ConsultationFormData:
    """Return a validated copy of ``form`` with ``changes`` applied."""
    return ConsultationFormData(**{**dict(form), **changes})


def new_order_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _editable(form: ConsultationFormData) -> None:
    if form.is_finalized:
        raise ConsultationLockedError(
            "Consultation is finalized and can no longer be edited",
            detail={"consultation_id": form.consultation_id},
        )


def _edit(form: ConsultationFormData, **changes) -> ConsultationFormData:
    # Any edit invalidates a pending review
    _editable(form)
    return evolve(form, status=ConsultationStatus.DRAFT, **changes)


def update_field(form: ConsultationFormData, field: str, value) -> ConsultationFormData:
    _editable(form)
    if field not in _TEXT_FIELDS:
        raise KeyError(f"{field} is not an editable consultation field")
    return _edit(form, **{field: value})


# --- Diagnoses ---


def add_diagnosis(
    form: ConsultationFormData, code: str, description: str = ""
) -> ConsultationFormData:
    """Attach a diagnosis; the first one attached becomes primary."""
    _editable(form)
    if any(d.code == code for d in form.selected_diagnoses):
        return form
    diagnosis = ConsultationDiagnosis(
        code=code,
        description=description,
        is_primary=not form.selected_diagnoses,
    )
    return _edit(form, selected_diagnoses=[*form.selected_diagnoses, diagnosis])


def remove_diagnosis(form: ConsultationFormData, code: str) -> ConsultationFormData:
    _editable(form)
    remaining = [d for d in form.selected_diagnoses if d.code != code]
    if remaining and not any(d.is_primary for d in remaining):
        remaining[0] = remaining[0].model_copy(update={"is_primary": True})
    return _edit(form, selected_diagnoses=remaining)


def set_primary_diagnosis(form: ConsultationFormData, code: str) -> ConsultationFormData:
    _editable(form)
    if not any(d.code == code for d in form.selected_diagnoses):
        raise KeyError(f"Diagnosis {code} is not attached to this consultation")
    return _edit(
        form,
        selected_diagnoses=[
            d.model_copy(update={"is_primary": d.code == code})
            for d in form.selected_diagnoses
        ],
    )


# --- Lab orders ---


def add_lab_order(
    form: ConsultationFormData, test_code: str, test_name: str, **fields
) -> ConsultationFormData:
    _editable(form)
    order = ConsultationLabOrder(
        id=fields.pop("id", None) or new_order_id("lorder"),
        test_code=test_code,
        test_name=test_name,
        **fields,
    )
    return _edit(form, lab_orders=[*form.lab_orders, order])


def update_lab_order(form: ConsultationFormData, order_id: str, **updates) -> ConsultationFormData:
    _editable(form)
    return _edit(
        form,
        lab_orders=[
            ConsultationLabOrder(**{**dict(o), **updates}) if o.id == order_id else o
            for o in form.lab_orders
        ],
    )


def remove_lab_order(form: ConsultationFormData, order_id: str) -> ConsultationFormData:
    _editable(form)
    return _edit(form, lab_orders=[o for o in form.lab_orders if o.id != order_id])


# --- Prescriptions ---


def add_prescription_item(
    form: ConsultationFormData, drug_name: str, **fields
) -> ConsultationFormData:
    _editable(form)
    item = ConsultationPrescriptionItem(
        id=fields.pop("id", None) or new_order_id("pitem"),
        drug_name=drug_name,
        **fields,
    )
    return _edit(form, prescription_items=[*form.prescription_items, item])


def update_prescription_item(
    form: ConsultationFormData, item_id: str, **updates
) -> ConsultationFormData:
    _editable(form)
    return _edit(
        form,
        prescription_items=[
            ConsultationPrescriptionItem(**{**dict(i), **updates}) if i.id == item_id else i
            for i in form.prescription_items
        ],
    )


def remove_prescription_item(form: ConsultationFormData, item_id: str) -> ConsultationFormData:
    _editable(form)
    return _edit(
        form,
        prescription_items=[i for i in form.prescription_items if i.id != item_id],
    )


# --- Justifications ---


def add_justification(
    form: ConsultationFormData, entry: JustificationEntry
) -> ConsultationFormData:
    """Store a justification, replacing any earlier one for the same trigger."""
    _editable(form)
    kept = [j for j in form.justifications if j.trigger_id != entry.trigger_id]
    return _edit(form, justifications=[*kept, entry])


def justify(
    form: ConsultationFormData, trigger, text: str, timestamp: datetime | None = None
) -> ConsultationFormData:
    """Write ``text`` against an active ``JustificationTriggerInfo``."""
    entry = JustificationEntry(
        trigger_id=trigger.trigger_id,
        trigger_type=trigger.trigger_type,
        trigger_description=trigger.trigger_description,
        justification_text=text,
        item_id=trigger.item_id,
        item_name=trigger.item_name,
        timestamp=timestamp or datetime.now(),
    )
    return add_justification(form, entry)


def remove_justification(form: ConsultationFormData, trigger_id: str) -> ConsultationFormData:
    _editable(form)
    return _edit(
        form,
        justifications=[j for j in form.justifications if j.trigger_id != trigger_id],
    )
