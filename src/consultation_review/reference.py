"""Read-only reference repositories consumed by the review core.

The core only talks to the protocols below. ``InMemoryReferenceData``
implements all of them over materialized lists, loaded from JSON.
"""

import logging
from importlib import resources
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, PrivateAttr

from .schemas.catalog import (
    ConflictRule,
    HMORule,
    PayerContract,
    PriorResult,
    ProtocolBundle,
    ServiceCatalogItem,
)

logger = logging.getLogger(__name__)

SEED_DATA_FILE = "reference_data.json"


class ServiceCatalog(Protocol):
    def lookup_item(self, item_id: str) -> ServiceCatalogItem | None: ...


class PayerContracts(Protocol):
    def lookup_contract(self, payer_id: str, item_id: str) -> PayerContract | None: ...


class ComplianceRuleBook(Protocol):
    def list_rules(self, payer_id: str) -> list[HMORule]: ...


class PriorResultsSource(Protocol):
    def prior_results(self, patient_id: str) -> list[PriorResult]: ...


class BundleCatalog(Protocol):
    def list_bundles(self) -> list[ProtocolBundle]: ...


class ConflictRuleSource(Protocol):
    def list_conflict_rules(self) -> list[ConflictRule]: ...


class ReferenceData(
    ServiceCatalog,
    PayerContracts,
    ComplianceRuleBook,
    PriorResultsSource,
    BundleCatalog,
    ConflictRuleSource,
    Protocol,
):
    """All reference lookups a full consultation review needs."""


class InMemoryReferenceData(BaseModel):
    """Reference data held in memory, indexed on first use."""

    catalog: list[ServiceCatalogItem] = []
    contracts: list[PayerContract] = []
    rules: list[HMORule] = []
    bundles: list[ProtocolBundle] = []
    conflict_rules: list[ConflictRule] = []
    prior_results_by_patient: dict[str, list[PriorResult]] = {}

    _items_by_id: dict[str, ServiceCatalogItem] = PrivateAttr(default_factory=dict)
    _items_by_name: dict[str, ServiceCatalogItem] = PrivateAttr(default_factory=dict)
    _contracts_by_key: dict[tuple[str, str], PayerContract] = PrivateAttr(
        default_factory=dict
    )

    def model_post_init(self, __context) -> None:
        for item in self.catalog:
            self._items_by_id[item.id] = item
            self._items_by_name[item.name.lower()] = item
        for contract in self.contracts:
            key = (contract.payer_id, contract.item_id)
            if key in self._contracts_by_key:
                logger.warning(
                    "Duplicate contract for payer %s item %s, keeping the last one",
                    contract.payer_id,
                    contract.item_id,
                )
            self._contracts_by_key[key] = contract

    def lookup_item(self, item_id: str) -> ServiceCatalogItem | None:
        """Find a catalog item by id, then by case-insensitive name."""
        return self._items_by_id.get(item_id) or self._items_by_name.get(
            item_id.lower()
        )

    def lookup_contract(self, payer_id: str, item_id: str) -> PayerContract | None:
        contract = self._contracts_by_key.get((payer_id, item_id))
        if contract is None:
            # Contracts may be keyed by the canonical id while orders carry a name
            item = self.lookup_item(item_id)
            if item is not None and item.id != item_id:
                contract = self._contracts_by_key.get((payer_id, item.id))
        return contract

    def list_rules(self, payer_id: str) -> list[HMORule]:
        return [r for r in self.rules if r.provider_id == payer_id]

    def prior_results(self, patient_id: str) -> list[PriorResult]:
        return list(self.prior_results_by_patient.get(patient_id, []))

    def list_bundles(self) -> list[ProtocolBundle]:
        return list(self.bundles)

    def list_conflict_rules(self) -> list[ConflictRule]:
        return list(self.conflict_rules)


def load_reference_data(path: str | Path | None = None) -> InMemoryReferenceData:
    """Load reference data from a JSON file, or the packaged seed data."""
    if path is None:
        raw = (
            resources.files("consultation_review.data")
            .joinpath(SEED_DATA_FILE)
            .read_text(encoding="utf-8")
        )
    else:
        raw = Path(path).read_text(encoding="utf-8")
    return InMemoryReferenceData.model_validate_json(raw)


def get_reference_data() -> InMemoryReferenceData:
    """Reference data resource for the review workflow."""
    return load_reference_data()
