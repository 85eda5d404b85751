"""
Asset discovery collaborator interface and stub.
Invoked once a session is approved; returns zero or more asset specs for that session.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from estateclaims.models import AssetType, ClaimSession


@dataclass(frozen=True)
class AssetSpec:
    """One holding reported by the discovery collaborator."""

    institution_name: str
    asset_type: AssetType
    account_number: str | None = None
    estimated_value: float | None = None
    currency: str = "USD"
    details: dict[str, Any] = field(default_factory=dict)

    def dedupe_key(self) -> tuple[str, str, str | None]:
        return (self.institution_name, self.asset_type.value, self.account_number)


class AssetDiscovery(ABC):
    @abstractmethod
    def discover(self, session: ClaimSession) -> list[AssetSpec]:
        ...


class StubAssetDiscovery(AssetDiscovery):
    """Returns a configured list of specs for every session."""

    def __init__(self, specs: list[AssetSpec] | None = None):
        self.specs = list(specs or [])
        self.calls: list[str] = []

    def discover(self, session: ClaimSession) -> list[AssetSpec]:
        self.calls.append(session.id)
        return list(self.specs)


def default_demo_specs() -> list[AssetSpec]:
    return [
        AssetSpec("First National Bank", AssetType.BANK_ACCOUNT, "****4521", 25400.0),
        AssetSpec("Evergreen Life", AssetType.INSURANCE, "POL-88213", 100000.0),
        AssetSpec("Harbor Credit Union", AssetType.LOAN, "LN-1102", 3200.0, details={"payoff_required": True}),
    ]
