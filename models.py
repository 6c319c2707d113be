from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils import to_unix_seconds


# ── Enums ─────────────────────────────────────────────────────────────────────


class TxCategory(str, Enum):
    EXTERNAL = "external"
    INTERNAL = "internal"
    ERC20 = "erc20"


class ProtocolCategory(str, Enum):
    DEFI = "defi"
    NFT = "nft"
    GAMING = "gaming"
    STAKING = "staking"
    GOVERNANCE = "governance"
    BRIDGE = "bridge"
    UNKNOWN = "unknown"


class Archetype(str, Enum):
    DEFI_USER = "DeFi Power User"
    NFT_COLLECTOR = "NFT Collector"
    GOVERNANCE_PARTICIPANT = "Governance Participant"
    TRADER = "Trader"
    LONG_TERM_INVESTOR = "Long-term Investor"
    DEVELOPER = "Developer/Builder"
    GAMING_ENTHUSIAST = "Gaming Enthusiast"


class MatchSource(str, Enum):
    TABLE = "table"
    ORACLE = "oracle"
    FALLBACK = "fallback"


# ── Core Data Models ──────────────────────────────────────────────────────────


class Transaction(BaseModel):
    """One on-chain event affecting the wallet, after ingestion."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    hash: str
    from_address: str = Field("", alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    value: str = "0"
    timestamp: int = 0
    block_number: int = 0
    gas_used: str = "0"
    gas_price: str = "0"
    token_symbol: Optional[str] = None
    token_name: Optional[str] = None
    token_decimals: int = 18
    input: str = "0x"
    contract_address: Optional[str] = None
    category: TxCategory = TxCategory.EXTERNAL
    is_error: bool = False

    @field_validator("timestamp", mode="before")
    @classmethod
    def _bound_timestamp(cls, value: object) -> int:
        return to_unix_seconds(value)

    @property
    def has_gas_data(self) -> bool:
        return self.gas_used not in ("", "0") and self.gas_price not in ("", "0")


class Erc20Holding(BaseModel):
    contract_address: str
    symbol: str
    name: Optional[str] = None
    decimals: int = 18
    balance: float = 0.0


class NftHolding(BaseModel):
    contract_address: str
    token_id: str
    symbol: Optional[str] = None
    name: Optional[str] = None


class TokenHoldingSet(BaseModel):
    erc20: list[Erc20Holding] = []
    erc721: list[NftHolding] = []


class ProtocolEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    name: str
    category: ProtocolCategory


class ProtocolMatch(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    name: str
    category: ProtocolCategory = ProtocolCategory.UNKNOWN
    confidence: int = 0
    source: MatchSource = MatchSource.FALLBACK


# ── AI Oracle Models ──────────────────────────────────────────────────────────


class WalletInsights(BaseModel):
    trading_style: str
    risk_tolerance: str
    defi_sophistication: str
    behavioral_traits: list[str] = []
    recommendations: list[str] = []
    security_assessment: str
    market_context: str


class ChatResponse(BaseModel):
    response: str
    suggestions: list[str] = []
    action_items: list[str] = []


class ChatSession(BaseModel):
    """Per-session chat state owned by the caller, not by the engine."""

    remaining_questions: int = 1


class RiskAssessment(BaseModel):
    overall: str
    factors: list[str] = []
    score: int = 50


class TradingPatterns(BaseModel):
    style: str
    frequency: str
    preferences: list[str] = []


class ProtocolExpertise(BaseModel):
    level: str
    specializations: list[str] = []
    recommendations: list[str] = []


class SecurityAnalysis(BaseModel):
    strengths: list[str] = []
    vulnerabilities: list[str] = []
    recommendations: list[str] = []


class PortfolioInsights(BaseModel):
    diversification: str
    allocation: str
    suggestions: list[str] = []


class DetailedAnalysis(BaseModel):
    risk_assessment: RiskAssessment
    trading_patterns: TradingPatterns
    protocol_expertise: ProtocolExpertise
    security_analysis: SecurityAnalysis
    portfolio_insights: PortfolioInsights


# ── Persona ───────────────────────────────────────────────────────────────────


class WalletPersona(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    chain: str
    archetypes: dict[Archetype, float]
    risk_score: int
    activity_level: int
    security_score: int
    top_protocols: list[str] = []
    behavioral_traits: list[str] = []
    recommended_dapps: list[str] = []
    ai_insights: Optional[WalletInsights] = None
    conversation_enabled: bool = True
    transaction_count: int = 0
    transactions: list[Transaction] = []


# ── API Models ────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str
    chains: list[str] = []
    ai: bool = False


class ChatRequest(BaseModel):
    question: str = Field(..., min_length=1)
    history: list[str] = []
    wallet_data: dict = Field(default_factory=dict)
    remaining_questions: int = Field(1, ge=0)


class ChatResult(BaseModel):
    chat: ChatResponse
    remaining_questions: int


class DetailedAnalysisRequest(BaseModel):
    persona: WalletPersona


class PersonaResponse(BaseModel):
    success: bool
    address: str
    chain: str
    persona: Optional[WalletPersona] = None
    processing_time_ms: Optional[int] = None
