"""Tests for protocol lookup, oracle fallback and top-K ranking."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from conftest import UNISWAP_V2, make_tx

from models import MatchSource, ProtocolCategory, ProtocolMatch
from protocols import (
    PROTOCOLS,
    ProtocolResolver,
    coerce_category,
    format_protocol,
    rank_contracts,
    risky_addresses_for,
)

UNKNOWN = "0xabcdef0123456789abcdef0123456789abcdef01"
PANCAKE_V2 = "0x10ed43c718714eb63d5aa57b78b54704e256024e"


def _oracle(confidence: int = 90, name: str = "Mystery DEX") -> MagicMock:
    mock = MagicMock()
    mock.classify_protocol.return_value = ProtocolMatch(
        address=UNKNOWN, name=name, category=ProtocolCategory.DEFI, confidence=confidence,
        source=MatchSource.ORACLE,
    )
    return mock


def test_tables_are_read_only() -> None:
    with pytest.raises(TypeError):
        PROTOCOLS["ethereum"]["0x0"] = None  # type: ignore[index]


def test_lookup_is_chain_scoped() -> None:
    resolver = ProtocolResolver()
    assert resolver.lookup("bsc", PANCAKE_V2).name == "PancakeSwap V2 Router"
    assert resolver.lookup("ethereum", PANCAKE_V2) is None
    assert resolver.lookup("ethereum", UNISWAP_V2.upper().replace("0X", "0x")) is not None


@pytest.mark.asyncio
async def test_table_match_skips_oracle() -> None:
    oracle = _oracle()
    match = await ProtocolResolver(oracle).resolve("ethereum", UNISWAP_V2, 5)

    assert match.name == "Uniswap V2 Router"
    assert match.category == ProtocolCategory.DEFI
    assert match.confidence == 100
    assert match.source == MatchSource.TABLE
    oracle.classify_protocol.assert_not_called()


@pytest.mark.asyncio
async def test_confident_oracle_guess_is_accepted() -> None:
    match = await ProtocolResolver(_oracle(90)).resolve("ethereum", UNKNOWN, 4)

    assert match.name == "Mystery DEX"
    assert match.category == ProtocolCategory.DEFI
    assert match.source == MatchSource.ORACLE


@pytest.mark.asyncio
async def test_low_confidence_guess_becomes_placeholder() -> None:
    match = await ProtocolResolver(_oracle(40)).resolve("ethereum", UNKNOWN, 4)

    assert match.name == "Contract 0xabcdef..."
    assert match.category == ProtocolCategory.UNKNOWN
    assert match.confidence == 40
    assert match.source == MatchSource.FALLBACK


@pytest.mark.asyncio
async def test_confidence_at_threshold_is_rejected() -> None:
    match = await ProtocolResolver(_oracle(60), confidence_threshold=60).resolve(
        "ethereum", UNKNOWN
    )
    assert match.source == MatchSource.FALLBACK


@pytest.mark.asyncio
async def test_oracle_failure_gives_zero_confidence_placeholder() -> None:
    oracle = MagicMock()
    oracle.classify_protocol.side_effect = RuntimeError("model offline")

    match = await ProtocolResolver(oracle).resolve("ethereum", UNKNOWN)

    assert match.name == "Contract 0xabcdef..."
    assert match.confidence == 0


@pytest.mark.asyncio
async def test_oracle_dict_with_alias_category_is_accepted() -> None:
    oracle = MagicMock()
    oracle.classify_protocol.return_value = {"name": "Mystery DEX", "category": "dex", "confidence": 90}

    match = await ProtocolResolver(oracle).resolve("ethereum", UNKNOWN, 4)

    assert match.name == "Mystery DEX"
    assert match.address == UNKNOWN
    assert match.category == ProtocolCategory.DEFI
    assert match.source == MatchSource.ORACLE


@pytest.mark.asyncio
async def test_no_oracle_gives_placeholder() -> None:
    match = await ProtocolResolver().resolve("ethereum", UNKNOWN)
    assert match.source == MatchSource.FALLBACK
    assert match.confidence == 0


def test_rank_contracts_ties_keep_first_seen_order() -> None:
    b = "0x" + "b" * 40
    a = "0x" + "a" * 40
    txs = [
        make_tx("0x1", to=b),
        make_tx("0x2", to=a),
        make_tx("0x3", to=UNISWAP_V2),
        make_tx("0x4", to=UNISWAP_V2),
        make_tx("0x5", to=None),
    ]
    assert rank_contracts(txs) == [(UNISWAP_V2, 2), (b, 1), (a, 1)]


@pytest.mark.asyncio
async def test_top_protocols_respects_limit() -> None:
    txs = [make_tx(f"0x{i}", to="0x" + f"{i:040x}") for i in range(1, 6)]
    top = await ProtocolResolver().top_protocols("ethereum", txs, limit=3)
    assert len(top) == 3
    assert all(count == 1 for _, count in top)


@pytest.mark.asyncio
async def test_top_protocols_formatting() -> None:
    txs = [make_tx(f"0x{i}") for i in range(50)]
    top = await ProtocolResolver().top_protocols("ethereum", txs)
    assert [format_protocol(m, c) for m, c in top] == ["Uniswap V2 Router (50 txns)"]


def test_coerce_category() -> None:
    assert coerce_category("NFT") == ProtocolCategory.NFT
    assert coerce_category("dex") == ProtocolCategory.DEFI
    assert coerce_category("marketplace") == ProtocolCategory.NFT
    assert coerce_category("casino") == ProtocolCategory.UNKNOWN
    assert coerce_category(None) == ProtocolCategory.UNKNOWN


def test_risky_addresses_for_unknown_chain_is_empty() -> None:
    assert risky_addresses_for("fantom") == frozenset()
    assert "0xd90e2f925da726b50c4ed8d0fb90ad053324f31b" in risky_addresses_for("ethereum")
