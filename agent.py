import json
import os
import re

from pydantic import ValidationError

from models import (
    ChatResponse,
    DetailedAnalysis,
    MatchSource,
    PortfolioInsights,
    ProtocolExpertise,
    ProtocolMatch,
    RiskAssessment,
    SecurityAnalysis,
    TradingPatterns,
    WalletInsights,
)
from prompts import (
    CHAT_PROMPT,
    DETAILED_ANALYSIS_PROMPT,
    INSIGHTS_PROMPT,
    PROTOCOL_PROMPT,
    SYSTEM_PROMPT,
)
from protocols import coerce_category
from utils import contract_placeholder

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


# ── Fallbacks ─────────────────────────────────────────────────────────────────

DEFAULT_INSIGHTS = WalletInsights(
    trading_style="Analysis unavailable",
    risk_tolerance="Unable to determine",
    defi_sophistication="Assessment pending",
    behavioral_traits=["Data insufficient"],
    recommendations=["Enable detailed analysis with more transaction data"],
    security_assessment="Security analysis unavailable",
    market_context="Market context analysis pending",
)

DEFAULT_CHAT_RESPONSE = ChatResponse(
    response="I apologize, but I cannot process your question right now. Please try again.",
    suggestions=[
        "Try asking about your top protocols",
        "Ask about risk assessment",
        "Inquire about recommendations",
    ],
)

DEFAULT_DETAILED_ANALYSIS = DetailedAnalysis(
    risk_assessment=RiskAssessment(
        overall="Moderate risk profile with balanced approach to DeFi participation",
        factors=["Protocol diversification", "Transaction frequency", "Security practices"],
        score=65,
    ),
    trading_patterns=TradingPatterns(
        style="Strategic DeFi participant with calculated approach",
        frequency="Regular but measured transaction activity",
        preferences=["Established protocols", "Yield farming", "Liquidity provision"],
    ),
    protocol_expertise=ProtocolExpertise(
        level="Intermediate to Advanced",
        specializations=["DeFi protocols", "Yield optimization"],
        recommendations=["Explore advanced strategies", "Consider governance participation"],
    ),
    security_analysis=SecurityAnalysis(
        strengths=["Diversified protocol usage", "Regular activity monitoring"],
        vulnerabilities=["Approval management", "Smart contract risks"],
        recommendations=["Regular security audits", "Use hardware wallet"],
    ),
    portfolio_insights=PortfolioInsights(
        diversification="Well-diversified across multiple protocols and strategies",
        allocation="Balanced allocation between different DeFi sectors",
        suggestions=["Consider rebalancing", "Explore new yield opportunities"],
    ),
)


def extract_json(text: str) -> dict:
    """Pull the first JSON object out of a model reply (models like to add prose)."""
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ValueError("No JSON object in model response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Model response JSON is not an object")
    return data


class WalletInsightsAgent:
    """LLM-backed oracle: protocol classification, persona insights and wallet chat."""

    def __init__(self, provider: str | None = None):
        self.provider = (provider or os.getenv("AI_PROVIDER", "anthropic")).lower()

        if self.provider == "anthropic":
            self._init_anthropic()
        elif self.provider == "gemini":
            self._init_gemini()
        elif self.provider == "openai":
            self._init_openai()
        else:
            raise ValueError(
                f"Unknown AI_PROVIDER '{self.provider}'. "
                "Set AI_PROVIDER to 'anthropic', 'openai', or 'gemini'."
            )

    # ── Provider Init ─────────────────────────────────────────────────────

    def _init_anthropic(self):
        import anthropic

        api_key = os.getenv("ANTHROPIC_API_KEY")
        if not api_key:
            raise EnvironmentError("ANTHROPIC_API_KEY is not set.")
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = os.getenv("CLAUDE_MODEL", "claude-sonnet-4-6")
        print(f"  AI Provider: Anthropic | Model: {self.model}")

    def _init_gemini(self):
        import google.generativeai as genai

        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise EnvironmentError("GEMINI_API_KEY is not set.")
        genai.configure(api_key=api_key)
        self.model = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
        self.client = genai.GenerativeModel(self.model)
        print(f"  AI Provider: Gemini | Model: {self.model}")

    def _init_openai(self):
        from openai import OpenAI

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise EnvironmentError("OPENAI_API_KEY is not set.")
        self.client = OpenAI(api_key=api_key)
        self.model = os.getenv("OPENAI_MODEL", "gpt-4o")
        print(f"  AI Provider: OpenAI | Model: {self.model}")

    # ── Oracle Operations ─────────────────────────────────────────────────

    def classify_protocol(
        self, address: str, chain: str, interaction_count: int = 0
    ) -> ProtocolMatch:
        """Best-effort protocol guess; confidence 0 placeholder when the model fails."""
        prompt = PROTOCOL_PROMPT.format(
            address=address, chain=chain.upper(), interaction_count=interaction_count
        )
        try:
            data = extract_json(self.complete(prompt, max_tokens=512))
            confidence = int(float(data.get("confidence") or 0))
            return ProtocolMatch(
                address=address.lower(),
                name=str(data.get("name") or contract_placeholder(address)),
                category=coerce_category(data.get("category")),
                confidence=max(0, min(100, confidence)),
                source=MatchSource.ORACLE,
            )
        except Exception as e:
            print(f"  [!] Protocol analysis failed for {address[:10]}: {e}")
            return ProtocolMatch(
                address=address.lower(),
                name=contract_placeholder(address),
                confidence=0,
                source=MatchSource.FALLBACK,
            )

    def generate_insights(self, wallet_summary: dict) -> WalletInsights:
        wallet_data = json.dumps(wallet_summary, indent=2, default=str)
        try:
            data = extract_json(self.complete(INSIGHTS_PROMPT.format(wallet_data=wallet_data)))
            return WalletInsights.model_validate(data)
        except ValidationError as e:
            print(f"  [!] AI insights malformed: {e.error_count()} field errors")
        except Exception as e:
            print(f"  [!] AI insights failed: {e}")
        return DEFAULT_INSIGHTS

    def chat(
        self, question: str, wallet_data: dict, history: list[str] | None = None
    ) -> ChatResponse:
        prompt = CHAT_PROMPT.format(
            wallet_data=json.dumps(wallet_data, indent=2, default=str),
            history="\n".join(history or []) or "(none)",
            question=question,
        )
        try:
            return ChatResponse.model_validate(extract_json(self.complete(prompt)))
        except Exception as e:
            print(f"  [!] AI chat failed: {e}")
            return DEFAULT_CHAT_RESPONSE

    def detailed_analysis(self, wallet_data: dict) -> DetailedAnalysis:
        prompt = DETAILED_ANALYSIS_PROMPT.format(
            wallet_data=json.dumps(wallet_data, indent=2, default=str)
        )
        try:
            return DetailedAnalysis.model_validate(extract_json(self.complete(prompt)))
        except Exception as e:
            print(f"  [!] Detailed analysis failed: {e}")
            return DEFAULT_DETAILED_ANALYSIS

    # ── Completion ────────────────────────────────────────────────────────

    def complete(self, prompt: str, max_tokens: int = 4096) -> str:
        if self.provider == "anthropic":
            return self._call_anthropic(prompt, max_tokens)
        elif self.provider == "gemini":
            return self._call_gemini(prompt)
        elif self.provider == "openai":
            return self._call_openai(prompt, max_tokens)
        return ""

    def _call_anthropic(self, prompt: str, max_tokens: int) -> str:
        message = self.client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
        return message.content[0].text

    def _call_gemini(self, prompt: str) -> str:
        response = self.client.generate_content(f"{SYSTEM_PROMPT}\n\n{prompt}")
        return response.text

    def _call_openai(self, prompt: str, max_tokens: int) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=max_tokens,
        )
        return response.choices[0].message.content
