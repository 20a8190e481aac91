"""Address, amount, id and metadata validation."""

from __future__ import annotations

from decimal import Decimal

import pytest

from voxelcraft.ipfs.metadata import build_metadata_document, metadata_errors
from voxelcraft.models.errors import ErrorKind, OperationError
from voxelcraft.stellar.contracts import ContractRegistry
from voxelcraft.stellar.validation import (
    ZERO_ACCOUNT,
    from_base_units,
    is_account,
    is_address,
    require_id,
    to_base_units,
)

from tests.factories import ITEM_NFT, make_account, make_contract_set, make_metadata


def test_addresses():
    account = make_account()
    assert is_account(account)
    assert is_address(account)
    assert is_address(ITEM_NFT)
    assert not is_account(ITEM_NFT)
    assert is_account(ZERO_ACCOUNT)
    assert not is_address("0x1234")
    assert not is_address(None)


@pytest.mark.parametrize("amount,units", [
    ("1", 10_000_000),
    ("0.0000001", 1),
    ("12.5", 125_000_000),
    (Decimal("3"), 30_000_000),
    (2, 20_000_000),
])
def test_to_base_units(amount, units):
    assert to_base_units(amount) == units


@pytest.mark.parametrize("amount", ["0", "-1", "", "abc", "1e-8", "NaN", "Infinity"])
def test_to_base_units_rejects(amount):
    with pytest.raises(OperationError) as exc_info:
        to_base_units(amount)
    assert exc_info.value.kind == ErrorKind.INVALID_INPUT


def test_from_base_units():
    assert from_base_units(125_000_000) == "12.5"
    assert from_base_units(10_000_000) == "1"
    assert from_base_units(1) == "0.0000001"
    assert from_base_units(0) == "0"


def test_require_id():
    assert require_id("42", "item id") == 42
    for bad in (-1, 2 ** 64, "x", None, True):
        with pytest.raises(OperationError):
            require_id(bad, "item id")


def test_metadata_errors():
    assert metadata_errors(make_metadata()) == []
    assert metadata_errors([]) == ["metadata must be an object"]
    errors = metadata_errors({"name": " ", "attributes": [{"trait_type": "x"}, "bad"]})
    assert "name is required" in errors
    assert "description is required" in errors
    assert "attribute 1: value is required" in errors
    assert "attribute 2: must be an object" in errors


def test_metadata_document_keeps_template():
    template = make_metadata()
    document = build_metadata_document(template, "https://gw/ipfs/img")
    assert document["image"] == "https://gw/ipfs/img"
    assert "created_at" in document
    assert "image" not in template


def test_registry_resolution():
    registry = ContractRegistry(make_contract_set(), ("VXC", "PTX"))
    assert len(registry) == 9
    assert registry.collectible("ITEM") == ITEM_NFT
    assert registry.category_of(ITEM_NFT) == "item"
    assert registry.by_address(ITEM_NFT).key == "collectible:item"
    with pytest.raises(OperationError):
        registry.collectible("spaceship")
    with pytest.raises(OperationError):
        registry.token("DOGE")


def test_registry_skips_unconfigured():
    contracts = make_contract_set()
    contracts.dao = ""
    registry = ContractRegistry(contracts, ("VXC", "PTX"))
    assert registry.get("dao") is None
    with pytest.raises(OperationError) as exc_info:
        registry.dao
    assert exc_info.value.kind == ErrorKind.INVALID_INPUT
