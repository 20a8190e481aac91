"""Registry of the tracked contracts of one network."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from voxelcraft.models.config import COLLECTIBLE_CATEGORIES, ContractSet
from voxelcraft.models.errors import invalid_input
from voxelcraft.models.events import ContractFamily

MARKETPLACE = "marketplace"
REWARD_VAULT = "reward_vault"
DAO = "dao"


def token_key(asset: str) -> str:
    return f"token:{asset.upper()}"


def collectible_key(category: str) -> str:
    return f"collectible:{category.lower()}"


@dataclass(frozen=True)
class TrackedContract:
    key: str  # token:VXC, collectible:item, marketplace, ...
    family: ContractFamily
    address: str


class ContractRegistry:
    """Resolves logical contract keys to addresses and back."""

    def __init__(self, contracts: ContractSet, assets: tuple[str, ...] = ()) -> None:
        self._by_key: dict[str, TrackedContract] = {}
        for asset in assets or tuple(contracts.tokens):
            self._add(token_key(asset), ContractFamily.FUNGIBLE, contracts.token(asset))
        for category in COLLECTIBLE_CATEGORIES:
            self._add(
                collectible_key(category),
                ContractFamily.COLLECTIBLE,
                contracts.collectible(category),
            )
        self._add(MARKETPLACE, ContractFamily.MARKETPLACE, contracts.marketplace)
        self._add(REWARD_VAULT, ContractFamily.REWARD, contracts.reward_vault)
        self._add(DAO, ContractFamily.GOVERNANCE, contracts.dao)
        self._by_address = {c.address: c for c in self._by_key.values()}

    def _add(self, key: str, family: ContractFamily, address: str) -> None:
        # Unconfigured contracts are simply not tracked
        if address:
            self._by_key[key] = TrackedContract(key=key, family=family, address=address)

    def __iter__(self) -> Iterator[TrackedContract]:
        return iter(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)

    def get(self, key: str) -> TrackedContract | None:
        return self._by_key.get(key)

    def require(self, key: str) -> TrackedContract:
        contract = self._by_key.get(key)
        if contract is None:
            raise invalid_input(f"no contract configured for {key!r}")
        return contract

    def by_address(self, address: str) -> TrackedContract | None:
        return self._by_address.get(address)

    def token(self, asset: str) -> str:
        return self.require(token_key(asset)).address

    def collectible(self, category: str) -> str:
        if category.lower() not in COLLECTIBLE_CATEGORIES:
            raise invalid_input(f"unknown collectible category: {category!r}")
        return self.require(collectible_key(category)).address

    def category_of(self, address: str) -> str | None:
        contract = self._by_address.get(address)
        if contract is None or contract.family != ContractFamily.COLLECTIBLE:
            return None
        return contract.key.split(":", 1)[1]

    @property
    def marketplace(self) -> str:
        return self.require(MARKETPLACE).address

    @property
    def reward_vault(self) -> str:
        return self.require(REWARD_VAULT).address

    @property
    def dao(self) -> str:
        return self.require(DAO).address

    def addresses(self) -> list[str]:
        return list(self._by_address)
