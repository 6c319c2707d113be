"""Pure scoring functions over a normalized transaction set.

Nothing here does I/O or keeps state; each function can run in any order.
``now`` is injectable so identical inputs always give identical scores.
"""

import time
from typing import Iterable, Mapping, Optional

from models import Archetype, ProtocolCategory, TokenHoldingSet, Transaction, TxCategory
from normalizer import deployments
from utils import SECONDS_PER_DAY, clamp, from_base_units

GOVERNANCE_TOKENS = frozenset({"COMP", "UNI", "AAVE", "MKR"})

TRADER_MAX_GAP = SECONDS_PER_DAY
INVESTOR_MIN_GAP = 30 * SECONDS_PER_DAY

SECURITY_BASE_SCORE = 50


def empty_scores() -> dict[Archetype, float]:
    return {archetype: 0.0 for archetype in Archetype}


# ── Activity ──────────────────────────────────────────────────────────────────


def calculate_activity_level(
    transactions: list[Transaction], now: Optional[float] = None
) -> int:
    if not transactions:
        return 0

    now = time.time() if now is None else now
    timestamps = [tx.timestamp for tx in transactions]
    newest, oldest = max(timestamps), min(timestamps)

    days_since_last = max(0.0, (now - newest) / SECONDS_PER_DAY)
    recency = max(0.0, 100 - days_since_last * 2)

    span_days = (newest - oldest) / SECONDS_PER_DAY
    tx_per_day = len(transactions) / max(1.0, span_days)
    frequency = min(100.0, tx_per_day * 20)

    return int(clamp(round(0.4 * recency + 0.6 * frequency)))


# ── Security / Risk ───────────────────────────────────────────────────────────


def calculate_security_score(
    transactions: list[Transaction],
    interactions: list[Transaction],
    risky_addresses: Iterable[str] = (),
    penalty: int = 10,
) -> int:
    score = SECURITY_BASE_SCORE

    risky = {addr.lower() for addr in risky_addresses}
    risky_hits = sum(
        1 for tx in interactions if tx.to_address and tx.to_address.lower() in risky
    )
    score -= risky_hits * penalty

    unique_recipients = {(tx.to_address or "").lower() for tx in transactions}
    ratio = len(unique_recipients) / len(transactions) if transactions else 1.0
    if ratio < 0.2:
        score += 15
    elif ratio < 0.5:
        score += 5

    return int(clamp(score))


def calculate_risk_score(security_score: int) -> int:
    return int(clamp(100 - security_score))


def unique_contract_count(interactions: Iterable[Transaction]) -> int:
    return len({tx.to_address.lower() for tx in interactions if tx.to_address})


# ── Archetype Raw Scores ──────────────────────────────────────────────────────


def average_gap_seconds(transactions: list[Transaction]) -> Optional[float]:
    """Mean time between consecutive transactions, None with fewer than two."""
    if len(transactions) < 2:
        return None
    timestamps = sorted(tx.timestamp for tx in transactions)
    gaps = [b - a for a, b in zip(timestamps, timestamps[1:])]
    return sum(gaps) / len(gaps)


def average_native_value(transactions: list[Transaction]) -> float:
    values = [
        from_base_units(tx.value, tx.token_decimals)
        for tx in transactions
        if tx.category != TxCategory.ERC20
    ]
    return sum(values) / len(values) if values else 0.0


def category_counts(
    interactions: Iterable[Transaction],
    categories: Mapping[str, ProtocolCategory],
) -> dict[ProtocolCategory, int]:
    counts: dict[ProtocolCategory, int] = {}
    for tx in interactions:
        if not tx.to_address:
            continue
        category = categories.get(tx.to_address.lower())
        if category and category != ProtocolCategory.UNKNOWN:
            counts[category] = counts.get(category, 0) + 1
    return counts


def score_transaction_patterns(
    scores: dict[Archetype, float], transactions: list[Transaction]
) -> None:
    gap = average_gap_seconds(transactions)
    if gap is None:
        return
    if gap < TRADER_MAX_GAP:
        scores[Archetype.TRADER] += 30
    if gap > INVESTOR_MIN_GAP and average_native_value(transactions) > 1:
        scores[Archetype.LONG_TERM_INVESTOR] += 30


def score_token_holdings(
    scores: dict[Archetype, float], holdings: TokenHoldingSet
) -> None:
    nft_count = len(holdings.erc721)
    if nft_count > 5:
        scores[Archetype.NFT_COLLECTOR] += 20 + min(30, nft_count)

    if len(holdings.erc20) > 5:
        scores[Archetype.DEFI_USER] += 15

    governance = [t for t in holdings.erc20 if (t.symbol or "").upper() in GOVERNANCE_TOKENS]
    scores[Archetype.GOVERNANCE_PARTICIPANT] += 15 * len(governance)


def score_contract_interactions(
    scores: dict[Archetype, float],
    interactions: list[Transaction],
    categories: Mapping[str, ProtocolCategory],
) -> None:
    counts = category_counts(interactions, categories)

    if counts.get(ProtocolCategory.DEFI):
        scores[Archetype.DEFI_USER] += min(40, counts[ProtocolCategory.DEFI] * 2)
    if counts.get(ProtocolCategory.NFT):
        scores[Archetype.NFT_COLLECTOR] += min(40, counts[ProtocolCategory.NFT] * 2)
    if counts.get(ProtocolCategory.GAMING):
        scores[Archetype.GAMING_ENTHUSIAST] += min(40, counts[ProtocolCategory.GAMING] * 3)
    if counts.get(ProtocolCategory.GOVERNANCE):
        scores[Archetype.GOVERNANCE_PARTICIPANT] += min(40, counts[ProtocolCategory.GOVERNANCE] * 4)
    if counts.get(ProtocolCategory.STAKING):
        scores[Archetype.LONG_TERM_INVESTOR] += min(30, counts[ProtocolCategory.STAKING] * 3)

    deployed = deployments(interactions)
    if deployed:
        scores[Archetype.DEVELOPER] += 40 + min(40, len(deployed) * 10)


def score_archetypes(
    transactions: list[Transaction],
    interactions: list[Transaction],
    holdings: TokenHoldingSet,
    categories: Mapping[str, ProtocolCategory],
) -> dict[Archetype, float]:
    """Accumulate unbounded raw scores per archetype from independent signals."""
    scores = empty_scores()
    score_transaction_patterns(scores, transactions)
    score_token_holdings(scores, holdings)
    score_contract_interactions(scores, interactions, categories)
    return scores
