import asyncio
import time
from collections import Counter
from datetime import datetime, timezone
from typing import Callable, Optional

from agent import DEFAULT_CHAT_RESPONSE, DEFAULT_DETAILED_ANALYSIS, DEFAULT_INSIGHTS
from archetypes import dominant_archetype, normalize_archetypes
from chain_providers import ChainProvider
from config import Settings
from metrics import (
    average_gap_seconds,
    average_native_value,
    calculate_activity_level,
    calculate_risk_score,
    calculate_security_score,
    score_archetypes,
    unique_contract_count,
)
from models import (
    Archetype,
    ChatResponse,
    ChatSession,
    DetailedAnalysis,
    MatchSource,
    ProtocolCategory,
    TokenHoldingSet,
    Transaction,
    WalletInsights,
    WalletPersona,
)
from normalizer import contract_interactions, merge_transactions
from protocols import ProtocolResolver, format_protocol, risky_addresses_for
from utils import SECONDS_PER_DAY, validate_address

RECOMMENDED_DAPPS: dict[Archetype, list[str]] = {
    Archetype.DEFI_USER: ["Aave", "Compound", "Curve Finance", "Yearn Finance"],
    Archetype.NFT_COLLECTOR: ["SuperRare", "Foundation", "Blur", "LooksRare"],
    Archetype.GOVERNANCE_PARTICIPANT: ["Snapshot", "Tally", "Boardroom", "Commonwealth"],
    Archetype.TRADER: ["1inch", "dYdX", "GMX", "Perpetual Protocol"],
    Archetype.LONG_TERM_INVESTOR: ["Lido", "Rocket Pool", "Index Coop", "Convex"],
    Archetype.DEVELOPER: ["Hardhat", "Tenderly", "Alchemy", "The Graph"],
    Archetype.GAMING_ENTHUSIAST: ["Axie Infinity", "Gods Unchained", "Illuvium", "Gala Games"],
}

SECURITY_TOOLS = ["Revoke.cash", "Wallet Guard", "DeFi Saver"]

QUOTA_EXHAUSTED_RESPONSE = ChatResponse(
    response="You have used all questions for this session. Run a new analysis to keep chatting.",
    suggestions=["Generate a fresh persona", "Export the current report"],
)


# ── Traits & Recommendations ──────────────────────────────────────────────────


def derive_behavioral_traits(
    transactions: list[Transaction],
    interactions: list[Transaction],
    security_score: int,
    activity_level: int,
) -> list[str]:
    if not transactions:
        return ["Inactive"]

    traits: list[str] = []

    if security_score >= 70:
        traits.append("Conservative")
    elif security_score < 30:
        traits.append("High Risk Tolerance")
    else:
        traits.append("Balanced Risk Approach")

    if activity_level > 70:
        traits.append("Very Active")
    elif activity_level > 40:
        traits.append("Regularly Active")
    else:
        traits.append("Selective Activity")

    unique_contracts = unique_contract_count(interactions)
    if unique_contracts > 10:
        traits.append("Highly Diversified")
    elif unique_contracts > 5:
        traits.append("Well Diversified")
    elif unique_contracts < 3 and len(interactions) > 5:
        traits.append("Protocol Loyal")

    hours = Counter(
        datetime.fromtimestamp(tx.timestamp, tz=timezone.utc).hour for tx in transactions
    )
    busiest_hour, busiest_count = hours.most_common(1)[0]
    if busiest_count > len(transactions) * 0.4:
        if busiest_hour < 12:
            traits.append("Morning Trader")
        elif busiest_hour < 18:
            traits.append("Afternoon Trader")
        else:
            traits.append("Evening Trader")

    return traits


def recommend_dapps(
    distribution: dict[Archetype, float], security_score: int, security_threshold: int = 50
) -> list[str]:
    recommendations = list(RECOMMENDED_DAPPS[dominant_archetype(distribution)])
    if security_score < security_threshold:
        recommendations.extend(SECURITY_TOOLS)
    return recommendations


# ── Engine ────────────────────────────────────────────────────────────────────


class PersonaEngine:
    """Builds a WalletPersona for one chain from its data source and an optional AI oracle."""

    def __init__(
        self,
        data_source: ChainProvider,
        oracle=None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.data_source = data_source
        self.chain = data_source.get_chain_type()
        self.oracle = oracle
        self.settings = settings or Settings()
        self.clock = clock
        self.resolver = ProtocolResolver(oracle, self.settings.oracle_confidence_threshold)

    async def generate_persona(
        self, address: str, include_insights: bool = True
    ) -> WalletPersona:
        address = validate_address(address)

        wallet_txs, holdings, interaction_txs = await self._fetch(address)

        transactions = merge_transactions(wallet_txs, interaction_txs)
        interactions = contract_interactions(transactions)

        top = await self.resolver.top_protocols(
            self.chain, interactions, self.settings.top_protocols_limit
        )
        categories = self._categories(interactions)
        categories.update({
            match.address: match.category
            for match, _ in top
            if match.source == MatchSource.ORACLE
        })

        activity = calculate_activity_level(transactions, now=self.clock())
        security = calculate_security_score(
            transactions,
            interactions,
            risky_addresses_for(self.chain),
            self.settings.risky_interaction_penalty,
        )
        raw_scores = score_archetypes(transactions, interactions, holdings, categories)
        distribution = normalize_archetypes(raw_scores)

        persona = WalletPersona(
            address=address,
            chain=self.chain,
            archetypes=distribution,
            risk_score=calculate_risk_score(security),
            activity_level=activity,
            security_score=security,
            top_protocols=[format_protocol(match, count) for match, count in top],
            behavioral_traits=derive_behavioral_traits(
                transactions, interactions, security, activity
            ),
            recommended_dapps=recommend_dapps(
                distribution, security, self.settings.security_tool_threshold
            ),
            conversation_enabled=self.oracle is not None,
            transaction_count=len(transactions),
            transactions=transactions,
        )

        if not include_insights:
            return persona

        insights = await self._insights(self._wallet_summary(persona, transactions, holdings))
        return persona.model_copy(update={"ai_insights": insights})

    async def chat(
        self,
        question: str,
        wallet_context: dict,
        history: Optional[list[str]] = None,
        session: Optional[ChatSession] = None,
    ) -> ChatResponse:
        """Answer a question about an analyzed wallet, spending one question from the session."""
        if session is None:
            session = ChatSession(remaining_questions=self.settings.chat_questions_per_session)
        if session.remaining_questions <= 0:
            return QUOTA_EXHAUSTED_RESPONSE
        session.remaining_questions -= 1

        if self.oracle is None:
            return DEFAULT_CHAT_RESPONSE
        try:
            return await asyncio.to_thread(
                self.oracle.chat, question, wallet_context, history or []
            )
        except Exception as e:
            print(f"  [!] Chat failed: {e}")
            return DEFAULT_CHAT_RESPONSE

    async def detailed_analysis(self, persona: WalletPersona) -> DetailedAnalysis:
        if self.oracle is None:
            return DEFAULT_DETAILED_ANALYSIS
        wallet_data = persona.model_dump(mode="json", exclude={"transactions"})
        try:
            return await asyncio.to_thread(self.oracle.detailed_analysis, wallet_data)
        except Exception as e:
            print(f"  [!] Detailed analysis failed: {e}")
            return DEFAULT_DETAILED_ANALYSIS

    # ── Internals ──────────────────────────────────────────────────────────

    async def _fetch(
        self, address: str
    ) -> tuple[list[Transaction], TokenHoldingSet, list[Transaction]]:
        results = await asyncio.gather(
            self.data_source.get_wallet_transactions(address, self.settings.transaction_limit),
            self.data_source.get_token_balances(address),
            self.data_source.get_contract_interactions(address, self.settings.interaction_limit),
            return_exceptions=True,
        )

        wallet_txs, holdings, interaction_txs = results
        if isinstance(wallet_txs, BaseException):
            print(f"  [!] {self.chain} transactions failed: {wallet_txs}")
            wallet_txs = []
        if isinstance(holdings, BaseException):
            print(f"  [!] {self.chain} token balances failed: {holdings}")
            holdings = TokenHoldingSet()
        if isinstance(interaction_txs, BaseException):
            print(f"  [!] {self.chain} contract interactions failed: {interaction_txs}")
            interaction_txs = []
        return wallet_txs, holdings, interaction_txs

    def _categories(self, interactions: list[Transaction]) -> dict[str, ProtocolCategory]:
        categories: dict[str, ProtocolCategory] = {}
        for tx in interactions:
            if not tx.to_address:
                continue
            entry = self.resolver.lookup(self.chain, tx.to_address)
            if entry:
                categories[entry.address] = entry.category
        return categories

    def _wallet_summary(
        self,
        persona: WalletPersona,
        transactions: list[Transaction],
        holdings: TokenHoldingSet,
    ) -> dict:
        timestamps = [tx.timestamp for tx in transactions]
        span_days = (max(timestamps) - min(timestamps)) / SECONDS_PER_DAY if timestamps else 0
        gap = average_gap_seconds(transactions)
        return {
            "address": persona.address,
            "chain": persona.chain,
            "transaction_count": persona.transaction_count,
            "activity_level": persona.activity_level,
            "security_score": persona.security_score,
            "risk_score": persona.risk_score,
            "top_protocols": persona.top_protocols,
            "archetypes": {a.value: w for a, w in persona.archetypes.items()},
            "behavioral_traits": persona.behavioral_traits,
            "token_count": len(holdings.erc20),
            "nft_count": len(holdings.erc721),
            "avg_tx_value": round(average_native_value(transactions), 6),
            "avg_hours_between_tx": round(gap / 3600, 2) if gap is not None else None,
            "time_span_days": round(span_days, 1),
        }

    async def _insights(self, wallet_summary: dict) -> WalletInsights:
        if self.oracle is None:
            return DEFAULT_INSIGHTS
        try:
            return await asyncio.to_thread(self.oracle.generate_insights, wallet_summary)
        except Exception as e:
            print(f"  [!] AI insights failed: {e}")
            return DEFAULT_INSIGHTS
