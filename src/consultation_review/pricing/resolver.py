"""Price and coverage resolution for ordered items."""

import logging

from ..config import PricingSettings
from ..reference import PayerContracts, ServiceCatalog
from ..schemas.catalog import PayerContract
from ..schemas.common import CoverageStatus, PayerContext, ServiceCategory
from ..schemas.consultation import ConsultationFormData
from ..schemas.financial import ResolvedPrice

logger = logging.getLogger(__name__)


def resolve_prices(
    form: ConsultationFormData,
    payer: PayerContext,
    catalog: ServiceCatalog,
    contracts: PayerContracts,
    settings: PricingSettings | None = None,
) -> list[ResolvedPrice]:
    """Resolve every lab order and prescription item on the form.

    Lab orders come first, then prescriptions, each in form order. Nothing is
    cached: contract data is read again on every call.
    """
    prices: list[ResolvedPrice] = []

    for order in form.lab_orders:
        prices.append(
            resolve_price(
                order.test_code,
                order.test_name,
                ServiceCategory.LAB,
                payer,
                catalog,
                contracts,
                order_id=order.id,
                settings=settings,
            )
        )

    for item in form.prescription_items:
        prices.append(
            resolve_price(
                item.catalog_id,
                item.drug_name,
                ServiceCategory.PHARMACY,
                payer,
                catalog,
                contracts,
                order_id=item.id,
                settings=settings,
            )
        )

    return prices


def resolve_price(
    item_id: str,
    item_name: str,
    category: ServiceCategory,
    payer: PayerContext,
    catalog: ServiceCatalog,
    contracts: PayerContracts,
    order_id: str | None = None,
    settings: PricingSettings | None = None,
) -> ResolvedPrice:
    """Resolve one item's standard price, payer price and coverage.

    Unknown items never raise: they resolve at a zero cash price with
    ``catalog_missing`` set so the line still appears on the bill.
    """
    settings = settings or PricingSettings()
    item = catalog.lookup_item(item_id)

    if item is None:
        logger.warning(
            "Catalog has no item %r (%s); pricing it at 0 for operator follow-up",
            item_id,
            item_name,
        )
        standard_price = 0.0
        catalog_missing = True
        is_premium = is_restricted = False
        restriction_reason = None
    else:
        if not item.active:
            logger.warning("Catalog item %s (%s) is inactive", item.id, item.name)
        standard_price = item.cash_price
        category = item.category
        item_name = item_name or item.name
        catalog_missing = False
        is_premium = item.is_premium
        is_restricted = item.is_restricted
        restriction_reason = item.restriction_reason

    base = {
        "order_id": order_id,
        "item_id": item.id if item else item_id,
        "item_name": item_name,
        "category": category,
        "standard_price": standard_price,
        "is_premium": is_premium,
        "is_restricted": is_restricted,
        "restriction_reason": restriction_reason,
        "catalog_missing": catalog_missing,
    }

    if not payer.is_hmo:
        return ResolvedPrice(
            **base,
            payer_price=standard_price,
            coverage_status=CoverageStatus.NOT_APPLICABLE,
            patient_liability=standard_price,
            hmo_liability=0.0,
        )

    contract = contracts.lookup_contract(payer.hmo_provider_id, base["item_id"])
    if contract is None:
        return ResolvedPrice(
            **base,
            payer_price=standard_price,
            coverage_status=CoverageStatus.NOT_COVERED,
            patient_liability=standard_price,
            hmo_liability=0.0,
        )

    payer_price = contract.negotiated_price
    patient_liability, ambiguous = _patient_share(contract, settings)
    return ResolvedPrice(
        **base,
        payer_price=payer_price,
        coverage_status=contract.coverage_tier,
        patient_liability=patient_liability,
        hmo_liability=payer_price - patient_liability,
        copay_ambiguous=ambiguous,
    )


def _patient_share(
    contract: PayerContract, settings: PricingSettings
) -> tuple[float, bool]:
    """Return the patient's share of a contracted price and an ambiguity flag."""
    price = contract.negotiated_price

    if contract.coverage_tier == CoverageStatus.COVERED:
        return 0.0, False
    if contract.coverage_tier != CoverageStatus.PARTIAL:
        return price, False

    if contract.copay_fraction is not None:
        return round(price * contract.copay_fraction, settings.round_to), False
    if contract.copay_amount is not None:
        return min(contract.copay_amount, price), False

    logger.warning(
        "Contract for payer %s item %s is partial with no copay terms; "
        "treating the full %.2f as patient-liable pending review",
        contract.payer_id,
        contract.item_id,
        price,
    )
    return price, True
