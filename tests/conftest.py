"""Pytest fixtures shared across the persona engine tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from chain_providers import ChainProvider
from config import Settings
from models import MatchSource, ProtocolMatch, TokenHoldingSet, Transaction, TxCategory, WalletInsights

WALLET = "0xd8da6bf26964af9d7eed9e03e53415d37aa96045"
UNISWAP_V2 = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"
NOW = 1_750_000_000


def make_tx(
    tx_hash: str = "0xabc",
    to: str | None = UNISWAP_V2,
    timestamp: int = NOW,
    value: str = "0",
    input: str = "0x38ed1739",
    gas_used: str = "21000",
    gas_price: str = "20000000000",
    category: TxCategory = TxCategory.EXTERNAL,
    from_address: str = WALLET,
) -> Transaction:
    return Transaction(
        hash=tx_hash,
        from_address=from_address,
        to_address=to,
        value=value,
        timestamp=timestamp,
        block_number=18_000_000,
        gas_used=gas_used,
        gas_price=gas_price,
        input=input,
        category=category,
    )


class FakeProvider(ChainProvider):
    """In-memory data source that records every call it receives."""

    def __init__(
        self,
        transactions: list[Transaction] | None = None,
        interactions: list[Transaction] | None = None,
        holdings: TokenHoldingSet | None = None,
        chain: str = "ethereum",
    ):
        self.transactions = transactions or []
        self.interactions = interactions or []
        self.holdings = holdings or TokenHoldingSet()
        self.chain = chain
        self.calls: list[str] = []

    def get_chain_type(self) -> str:
        return self.chain

    async def get_wallet_transactions(self, address, limit=200):
        self.calls.append("transactions")
        return list(self.transactions)

    async def get_token_balances(self, address):
        self.calls.append("balances")
        return self.holdings

    async def get_contract_interactions(self, address, limit=50):
        self.calls.append("interactions")
        return list(self.interactions)


@pytest.fixture
def settings() -> Settings:
    return Settings(etherscan_api_key="test_etherscan_key_12345")


@pytest.fixture
def insights() -> WalletInsights:
    return WalletInsights(
        trading_style="Swing trader",
        risk_tolerance="Moderate",
        defi_sophistication="Advanced",
        behavioral_traits=["Router heavy"],
        recommendations=["Diversify venues"],
        security_assessment="No risky contracts seen",
        market_context="Active during volatile weeks",
    )


@pytest.fixture
def oracle(insights: WalletInsights) -> MagicMock:
    """Oracle double that names every contract 'Mystery DEX' with high confidence."""
    mock = MagicMock()
    mock.classify_protocol.side_effect = lambda address, chain, count: ProtocolMatch(
        address=address,
        name="Mystery DEX",
        category="defi",
        confidence=90,
        source=MatchSource.ORACLE,
    )
    mock.generate_insights.return_value = insights
    return mock
