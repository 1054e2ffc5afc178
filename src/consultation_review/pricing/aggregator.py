"""Financial aggregation over resolved prices."""

from ..schemas.common import ServiceCategory
from ..schemas.financial import FinancialSummary, ResolvedPrice

_TOTAL_FIELDS = {
    ServiceCategory.LAB: "lab_total",
    ServiceCategory.PHARMACY: "pharmacy_total",
    ServiceCategory.CONSULTATION: "consultation_total",
    ServiceCategory.PROCEDURE: "procedure_total",
    ServiceCategory.ADMISSION: "admission_total",
    ServiceCategory.OTHER: "other_total",
}


def aggregate(prices: list[ResolvedPrice]) -> FinancialSummary:
    """Fold resolved prices into category subtotals and a payer split.

    Totals use the payer price, not the list price. ``grand_total`` and
    ``hmo_total`` are derived by the summary itself.
    """
    totals = dict.fromkeys(_TOTAL_FIELDS.values(), 0.0)
    patient_total = 0.0
    flagged: list[str] = []

    for price in prices:
        totals[_TOTAL_FIELDS[price.category]] += price.payer_price
        patient_total += price.patient_liability
        if price.copay_ambiguous or price.catalog_missing:
            flagged.append(price.item_id)

    return FinancialSummary(
        **totals,
        patient_total=patient_total,
        item_count=len(prices),
        flagged_items=flagged,
    )
