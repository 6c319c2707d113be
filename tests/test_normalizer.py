"""Tests for explorer row ingestion, feed merging and transfer replay."""

from __future__ import annotations

import pytest
from conftest import UNISWAP_V2, WALLET, make_tx

from models import TxCategory
from normalizer import (
    contract_interactions,
    deployments,
    is_contract_interaction,
    merge_transactions,
    parse_explorer_rows,
    parse_explorer_tx,
    replay_nft_transfers,
    replay_token_transfers,
)

OTHER = "0x1111111111111111111111111111111111111111"
TOKEN = "0x1f9840a85d5af5bf1d1762f925bdaddc4201f984"
NFT = "0xbc4ca0eda7647a8ab7c2061c2e118a18a936f13d"


# ── Ingestion ─────────────────────────────────────────────────────────────────


def test_parse_external_row() -> None:
    row = {
        "hash": "0xABC",
        "blockNumber": "18000001",
        "timeStamp": "1706906640",
        "from": WALLET.upper().replace("0X", "0x"),
        "to": UNISWAP_V2,
        "value": "1000000000000000000",
        "gasUsed": "21000",
        "gasPrice": "20000000000",
        "input": "0x38ed1739",
        "isError": "0",
    }
    tx = parse_explorer_tx(row, TxCategory.EXTERNAL)

    assert tx.hash == "0xabc"
    assert tx.from_address == WALLET
    assert tx.to_address == UNISWAP_V2
    assert tx.timestamp == 1706906640
    assert tx.block_number == 18000001
    assert tx.token_symbol == "ETH"
    assert tx.has_gas_data
    assert not tx.is_error


def test_missing_numeric_fields_default_to_zero() -> None:
    tx = parse_explorer_tx({"hash": "0x1", "from": WALLET, "to": OTHER}, TxCategory.EXTERNAL)

    assert tx.value == "0"
    assert tx.gas_used == "0"
    assert tx.gas_price == "0"
    assert tx.timestamp == 0
    assert not tx.has_gas_data


def test_millisecond_timestamps_are_scaled_to_seconds() -> None:
    row = {"hash": "0x1", "from": WALLET, "to": OTHER, "timeStamp": "1706906640000"}
    assert parse_explorer_tx(row, TxCategory.EXTERNAL).timestamp == 1706906640


@pytest.mark.parametrize("raw", ["-5", str(10**20), "1e400", "soon"])
def test_unrepresentable_timestamps_become_zero(raw: str) -> None:
    row = {"hash": "0x1", "from": WALLET, "to": OTHER, "timeStamp": raw}
    assert parse_explorer_tx(row, TxCategory.EXTERNAL).timestamp == 0


def test_model_bounds_timestamps_from_any_source() -> None:
    assert make_tx("0x1", timestamp=1_750_000_000_000).timestamp == 1_750_000_000
    assert make_tx("0x2", timestamp=-1).timestamp == 0


def test_empty_to_is_contract_creation() -> None:
    tx = parse_explorer_tx({"hash": "0x1", "from": WALLET, "to": ""}, TxCategory.EXTERNAL)
    assert tx.to_address is None
    assert is_contract_interaction(tx)


def test_internal_create_row_is_deployment() -> None:
    row = {"hash": "0x1", "from": WALLET, "to": OTHER, "type": "create"}
    tx = parse_explorer_tx(row, TxCategory.INTERNAL)
    assert tx.to_address is None


def test_token_row_is_not_a_contract_call() -> None:
    row = {
        "hash": "0x2",
        "from": OTHER,
        "to": WALLET,
        "contractAddress": TOKEN,
        "value": "5000000000000000000",
        "tokenSymbol": "UNI",
        "tokenName": "Uniswap",
        "tokenDecimal": "18",
        "input": "deprecated",
    }
    tx = parse_explorer_tx(row, TxCategory.ERC20)

    assert tx.token_symbol == "UNI"
    assert tx.contract_address == TOKEN
    assert tx.input == "0x"
    assert not is_contract_interaction(tx)


def test_rows_without_hash_are_skipped() -> None:
    rows = [{"hash": "0x1"}, {"from": WALLET}, "garbage", {"hash": ""}]
    assert [tx.hash for tx in parse_explorer_rows(rows, TxCategory.EXTERNAL)] == ["0x1"]


def test_failed_transaction_flag() -> None:
    tx = parse_explorer_tx({"hash": "0x1", "isError": "1"}, TxCategory.EXTERNAL)
    assert tx.is_error


# ── Merge & Dedup ─────────────────────────────────────────────────────────────


def test_merge_sorts_newest_first() -> None:
    older = make_tx("0x1", timestamp=100)
    newer = make_tx("0x2", timestamp=200)
    assert [tx.hash for tx in merge_transactions([older, newer])] == ["0x2", "0x1"]


def test_duplicate_with_gas_data_wins() -> None:
    bare = make_tx("0x1", gas_used="0", gas_price="0", category=TxCategory.INTERNAL)
    full = make_tx("0x1", category=TxCategory.INTERNAL)

    merged = merge_transactions([bare], [full])

    assert len(merged) == 1
    assert merged[0].has_gas_data


def test_external_wins_over_internal_at_equal_gas() -> None:
    internal = make_tx("0x1", category=TxCategory.INTERNAL)
    external = make_tx("0x1", category=TxCategory.EXTERNAL)

    merged = merge_transactions([internal], [external])

    assert merged[0].category == TxCategory.EXTERNAL


def test_first_seen_kept_when_ranks_tie() -> None:
    first = make_tx("0x1", value="1")
    second = make_tx("0x1", value="2")
    assert merge_transactions([first], [second])[0].value == "1"


def test_external_beats_token_row_for_same_hash() -> None:
    token = make_tx("0x1", input="0x", category=TxCategory.ERC20)
    call = make_tx("0x1", input="0xa9059cbb")

    merged = merge_transactions([token], [call])

    assert merged[0].category == TxCategory.EXTERNAL
    assert is_contract_interaction(merged[0])


def test_merge_tolerates_empty_feeds() -> None:
    assert merge_transactions([], None) == []


# ── Contract interactions ─────────────────────────────────────────────────────


def test_contract_interaction_rules() -> None:
    plain_send = make_tx("0x1", to=OTHER, input="0x")
    zero_input = make_tx("0x2", to=OTHER, input="0x0")
    call = make_tx("0x3", input="0x38ed1739")
    deploy = make_tx("0x4", to=None, input="0x6080")

    assert contract_interactions([plain_send, zero_input, call, deploy]) == [call, deploy]
    assert deployments([plain_send, call, deploy]) == [deploy]


# ── Transfer replay ───────────────────────────────────────────────────────────


def _token_row(frm: str, to: str, value: str, contract: str = TOKEN) -> dict:
    return {
        "contractAddress": contract,
        "from": frm,
        "to": to,
        "value": value,
        "tokenSymbol": "UNI",
        "tokenName": "Uniswap",
        "tokenDecimal": "18",
    }


def test_replay_token_transfers_nets_balances() -> None:
    rows = [
        _token_row(OTHER, WALLET, "3000000000000000000"),
        _token_row(WALLET, OTHER, "1000000000000000000"),
    ]
    holdings = replay_token_transfers(WALLET, rows)

    assert len(holdings) == 1
    assert holdings[0].symbol == "UNI"
    assert holdings[0].balance == 2.0


def test_replay_token_transfers_drops_spent_tokens() -> None:
    rows = [
        _token_row(OTHER, WALLET, "1000"),
        _token_row(WALLET, OTHER, "1000"),
    ]
    assert replay_token_transfers(WALLET, rows) == []


def test_replay_nft_transfers_keeps_only_held_tokens() -> None:
    rows = [
        {"contractAddress": NFT, "tokenID": "7", "from": WALLET, "to": OTHER, "timeStamp": "300"},
        {"contractAddress": NFT, "tokenID": "7", "from": OTHER, "to": WALLET, "timeStamp": "100"},
        {"contractAddress": NFT, "tokenID": "8", "from": OTHER, "to": WALLET, "timeStamp": "200"},
    ]
    held = replay_nft_transfers(WALLET, rows)

    assert [(n.contract_address, n.token_id) for n in held] == [(NFT, "8")]
