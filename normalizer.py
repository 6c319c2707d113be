"""Ingestion and normalization of raw explorer feeds.

Every explorer row (regular, internal, token transfer) is mapped into a
``Transaction`` here and nowhere else. Feeds for the same wallet are then
merged into one deduplicated, newest-first sequence.
"""

from typing import Iterable, Optional

from models import Erc20Holding, NftHolding, Transaction, TxCategory
from utils import from_base_units, to_decimal_str, to_int, to_unix_seconds

EMPTY_CALL_DATA = {"", "0x", "0x0"}


# ── Ingestion ─────────────────────────────────────────────────────────────────


def parse_explorer_tx(
    row: dict,
    category: TxCategory,
    native_symbol: str = "ETH",
    native_name: str = "Ethereum",
) -> Transaction:
    """Map one Etherscan-shaped row (txlist / txlistinternal / tokentx) into a Transaction."""
    to_addr = (row.get("to") or "").lower() or None
    if category == TxCategory.INTERNAL and row.get("type") == "create":
        to_addr = None

    if category == TxCategory.ERC20:
        symbol = row.get("tokenSymbol") or None
        name = row.get("tokenName") or None
        decimals = to_int(row.get("tokenDecimal"), 18)
        # tokentx rows carry a "deprecated" input; transfers are not wallet calls
        call_data = "0x"
    else:
        symbol = native_symbol
        name = native_name
        decimals = 18
        call_data = row.get("input") or "0x"

    return Transaction(
        hash=(row.get("hash") or "").lower(),
        from_address=(row.get("from") or "").lower(),
        to_address=to_addr,
        value=to_decimal_str(row.get("value")),
        timestamp=to_unix_seconds(row.get("timeStamp")),
        block_number=to_int(row.get("blockNumber")),
        gas_used=to_decimal_str(row.get("gasUsed")),
        gas_price=to_decimal_str(row.get("gasPrice")),
        token_symbol=symbol,
        token_name=name,
        token_decimals=decimals,
        input=call_data,
        contract_address=(row.get("contractAddress") or "").lower() or None,
        category=category,
        is_error=str(row.get("isError", "0")) == "1",
    )


def parse_explorer_rows(
    rows: Iterable[dict],
    category: TxCategory,
    native_symbol: str = "ETH",
    native_name: str = "Ethereum",
) -> list[Transaction]:
    return [
        parse_explorer_tx(row, category, native_symbol, native_name)
        for row in rows
        if isinstance(row, dict) and row.get("hash")
    ]


# ── Merge & Dedup ─────────────────────────────────────────────────────────────


def _rank(tx: Transaction) -> tuple[bool, bool]:
    return (tx.has_gas_data, tx.category == TxCategory.EXTERNAL)


def merge_transactions(*feeds: Iterable[Transaction]) -> list[Transaction]:
    """
    Merge transaction feeds into one list keyed by hash, newest first.

    A later duplicate replaces the kept entry only when it ranks strictly
    higher: complete gas data first, then the external category. Otherwise
    the first-seen entry stays.
    """
    kept: dict[str, Transaction] = {}
    for feed in feeds:
        for tx in feed or []:
            current = kept.get(tx.hash)
            if current is None or _rank(tx) > _rank(current):
                kept[tx.hash] = tx

    # dict preserves first-seen order, sort is stable
    return sorted(kept.values(), key=lambda t: t.timestamp, reverse=True)


def is_contract_interaction(tx: Transaction) -> bool:
    return (tx.input or "").lower() not in EMPTY_CALL_DATA or tx.to_address is None


def contract_interactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [tx for tx in transactions if is_contract_interaction(tx)]


def deployments(transactions: Iterable[Transaction]) -> list[Transaction]:
    return [tx for tx in transactions if tx.to_address is None]


# ── Token Holdings (transfer replay) ──────────────────────────────────────────


def replay_token_transfers(address: str, rows: Iterable[dict]) -> list[Erc20Holding]:
    """Build ERC-20 balances by crediting inbound and debiting outbound transfers."""
    owner = address.lower()
    raw_balances: dict[str, int] = {}
    meta: dict[str, dict] = {}

    for row in rows:
        contract = (row.get("contractAddress") or "").lower()
        if not contract:
            continue
        amount = to_int(row.get("value"))
        if contract not in meta:
            meta[contract] = row
            raw_balances[contract] = 0
        if (row.get("to") or "").lower() == owner:
            raw_balances[contract] += amount
        if (row.get("from") or "").lower() == owner:
            raw_balances[contract] -= amount

    holdings: list[Erc20Holding] = []
    for contract, raw in raw_balances.items():
        if raw <= 0:
            continue
        row = meta[contract]
        decimals = to_int(row.get("tokenDecimal"), 18)
        symbol = row.get("tokenSymbol") or ""
        holdings.append(Erc20Holding(
            contract_address=contract,
            symbol=symbol,
            name=row.get("tokenName") or symbol,
            decimals=decimals,
            balance=from_base_units(raw, decimals),
        ))
    return holdings


def replay_nft_transfers(address: str, rows: Iterable[dict]) -> list[NftHolding]:
    """Return the ERC-721 tokens still held after replaying transfers oldest first."""
    owner = address.lower()
    held: dict[tuple[str, str], Optional[NftHolding]] = {}

    ordered = sorted(
        (r for r in rows if isinstance(r, dict)),
        key=lambda r: to_int(r.get("timeStamp")),
    )
    for row in ordered:
        contract = (row.get("contractAddress") or "").lower()
        token_id = str(row.get("tokenID") or "")
        if not contract or not token_id:
            continue
        key = (contract, token_id)
        if (row.get("to") or "").lower() == owner:
            held[key] = NftHolding(
                contract_address=contract,
                token_id=token_id,
                symbol=row.get("tokenSymbol") or None,
                name=row.get("tokenName") or None,
            )
        elif (row.get("from") or "").lower() == owner:
            held[key] = None

    return [nft for nft in held.values() if nft is not None]
