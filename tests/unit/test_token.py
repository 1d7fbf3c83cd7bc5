"""
test_token.py - Unit tests for token.py

Tests:
- FungibleToken transfers and allowances (failure reported as False)
- Faucet minting vs owner-gated supply
- StableToken ownership and MintBurnCapability
"""

import pytest

from dsc import (
    FungibleToken,
    StableToken,
    MintBurnCapability,
    InsufficientBalance,
    InvalidAmount,
    NotOwner,
)


@pytest.fixture
def token():
    t = FungibleToken("Wrapped Ether", "WETH", "weth")
    t.mint("faucet", "alice", 100)
    return t


class TestFungibleToken:
    """Tests for FungibleToken."""

    def test_metadata(self, token):
        assert token.address == "weth"
        assert token.decimals == 18
        assert token.total_supply == 100

    def test_transfer(self, token):
        assert token.transfer("alice", "bob", 30) is True
        assert token.balance_of("alice") == 70
        assert token.balance_of("bob") == 30

    def test_transfer_insufficient(self, token):
        assert token.transfer("alice", "bob", 101) is False
        assert token.balance_of("alice") == 100
        assert token.balance_of("bob") == 0

    def test_transfer_negative(self, token):
        with pytest.raises(ValueError):
            token.transfer("alice", "bob", -1)

    def test_transfer_from_with_allowance(self, token):
        token.approve("alice", "engine", 50)
        assert token.transfer_from("engine", "alice", "engine", 40) is True
        assert token.balance_of("engine") == 40
        assert token.allowance("alice", "engine") == 10

    def test_transfer_from_without_allowance(self, token):
        assert token.transfer_from("engine", "alice", "engine", 1) is False
        assert token.balance_of("alice") == 100

    def test_transfer_from_insufficient_balance_keeps_allowance(self, token):
        token.approve("alice", "engine", 500)
        assert token.transfer_from("engine", "alice", "engine", 200) is False
        assert token.allowance("alice", "engine") == 500

    def test_transfer_from_self_needs_no_allowance(self, token):
        assert token.transfer_from("alice", "alice", "bob", 10) is True

    def test_approve_negative(self, token):
        with pytest.raises(ValueError):
            token.approve("alice", "engine", -1)

    def test_faucet_mint_and_burn(self, token):
        token.mint("anyone", "bob", 5)
        token.burn("bob", 5)
        assert token.total_supply == 100
        assert token.balance_of("bob") == 0

    def test_mint_zero(self, token):
        with pytest.raises(InvalidAmount):
            token.mint("faucet", "bob", 0)

    def test_burn_more_than_balance(self, token):
        with pytest.raises(InsufficientBalance):
            token.burn("alice", 101)


class TestStableToken:
    """Tests for StableToken and MintBurnCapability."""

    def test_owner_gated_mint(self):
        dsc = StableToken(owner="deployer")
        with pytest.raises(NotOwner) as exc:
            dsc.mint("mallory", "mallory", 1)
        assert exc.value.caller == "mallory"
        assert dsc.mint("deployer", "alice", 1) is True

    def test_owner_gated_burn(self):
        dsc = StableToken(owner="deployer")
        dsc.mint("deployer", "alice", 10)
        with pytest.raises(NotOwner):
            dsc.burn("alice", 10)

    def test_grant_capability_transfers_ownership(self):
        dsc = StableToken(owner="deployer")
        capability = dsc.grant_capability("deployer", "engine")
        assert isinstance(capability, MintBurnCapability)
        assert capability.holder == "engine"
        assert capability.token is dsc
        assert dsc.owner == "engine"
        with pytest.raises(NotOwner):
            dsc.mint("deployer", "deployer", 1)

    def test_only_owner_can_grant(self):
        dsc = StableToken(owner="deployer")
        with pytest.raises(NotOwner):
            dsc.grant_capability("mallory", "mallory")

    def test_capability_mint_and_burn(self):
        dsc = StableToken(owner="deployer")
        capability = dsc.grant_capability("deployer", "engine")
        assert capability.mint("alice", 100) is True
        assert dsc.balance_of("alice") == 100

        dsc.transfer("alice", "engine", 40)
        capability.burn(40)
        assert dsc.balance_of("engine") == 0
        assert dsc.total_supply == 60

    def test_capability_revoked_by_ownership_change(self):
        dsc = StableToken(owner="deployer")
        capability = dsc.grant_capability("deployer", "engine")
        dsc.transfer_ownership("engine", "someone_else")
        with pytest.raises(NotOwner):
            capability.mint("alice", 1)

    def test_defaults(self):
        dsc = StableToken(owner="deployer")
        assert dsc.symbol == "DSC"
        assert dsc.address == "dsc"
        assert dsc.decimals == 18
