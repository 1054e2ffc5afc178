"""Pricing output schemas."""

from pydantic import BaseModel, computed_field

from .common import CoverageStatus, ServiceCategory


class ResolvedPrice(BaseModel):
    """Price and coverage for one ordered item under the encounter's payer."""

    order_id: str | None = None
    item_id: str
    item_name: str
    category: ServiceCategory
    standard_price: float
    payer_price: float
    coverage_status: CoverageStatus
    patient_liability: float
    hmo_liability: float = 0.0
    is_premium: bool = False
    is_restricted: bool = False
    restriction_reason: str | None = None
    # Operator-review flags
    catalog_missing: bool = False
    copay_ambiguous: bool = False


class FinancialSummary(BaseModel):
    """Category subtotals and payer split for the encounter's orders.

    ``grand_total`` and ``hmo_total`` are derived from the stored totals, so
    the category sum and the payer split always agree.
    """

    lab_total: float = 0.0
    pharmacy_total: float = 0.0
    consultation_total: float = 0.0
    procedure_total: float = 0.0
    admission_total: float = 0.0
    other_total: float = 0.0
    patient_total: float = 0.0
    item_count: int = 0
    flagged_items: list[str] = []

    @computed_field
    @property
    def grand_total(self) -> float:
        return (
            self.lab_total
            + self.pharmacy_total
            + self.consultation_total
            + self.procedure_total
            + self.admission_total
            + self.other_total
        )

    @computed_field
    @property
    def hmo_total(self) -> float:
        return self.grand_total - self.patient_total
