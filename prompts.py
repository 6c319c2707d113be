SYSTEM_PROMPT = """You are a Web3 wallet intelligence analyst. You study on-chain behavior \
and describe the person behind a wallet.

Your analysis should be:
- Data-driven with specific numbers
- Grounded only in the data you are given
- Written in clear, professional language

Always answer with a single valid JSON object and nothing else."""


PROTOCOL_PROMPT = """Identify the smart contract below.

CONTRACT: {address}
BLOCKCHAIN: {chain}
INTERACTIONS FROM THIS WALLET: {interaction_count}

Use your knowledge of major DeFi, NFT, gaming, staking, governance and bridge \
protocols on this chain. If you are not sure, still give your best guess and lower \
the confidence.

Return JSON:
{{
  "name": "Protocol name (e.g. Uniswap V2 Router, Aave Lending Pool)",
  "category": "defi|nft|gaming|staking|governance|bridge|unknown",
  "confidence": 85
}}

Confidence guide: exact known address 95-99, likely protocol 60-85, unknown 20-40."""


INSIGHTS_PROMPT = """Analyze this wallet persona and describe its owner.

WALLET DATA:
{wallet_data}

Return JSON:
{{
  "trading_style": "Conservative, Moderate, Aggressive, Algorithmic... with one sentence why",
  "risk_tolerance": "Risk-averse, Balanced, Risk-seeking or Degen, with explanation",
  "defi_sophistication": "Beginner, Intermediate, Advanced or Expert, with reasoning",
  "behavioral_traits": ["3 to 5 short traits"],
  "recommendations": ["5 specific, actionable suggestions"],
  "security_assessment": "Security posture in two or three sentences",
  "market_context": "How this wallet fits current market behavior"
}}

Use actual numbers from the data. Never invent transactions."""


CHAT_PROMPT = """The user is asking about their wallet.

WALLET DATA:
{wallet_data}

CONVERSATION SO FAR:
{history}

QUESTION: "{question}"

Answer directly and specifically for this wallet, then offer follow-ups.

Return JSON:
{{
  "response": "Answer to the question",
  "suggestions": ["2-3 follow-up questions"],
  "action_items": ["optional concrete actions"]
}}"""


DETAILED_ANALYSIS_PROMPT = """Perform an in-depth analysis of this wallet persona.

WALLET DATA:
{wallet_data}

Cover five areas: risk assessment, trading patterns, protocol expertise, \
security analysis and portfolio insights.

Return JSON:
{{
  "risk_assessment": {{"overall": "risk profile", "factors": ["f1", "f2"], "score": 65}},
  "trading_patterns": {{"style": "style", "frequency": "frequency", "preferences": ["p1"]}},
  "protocol_expertise": {{"level": "level", "specializations": ["s1"], "recommendations": ["r1"]}},
  "security_analysis": {{"strengths": ["s1"], "vulnerabilities": ["v1"], "recommendations": ["r1"]}},
  "portfolio_insights": {{"diversification": "text", "allocation": "text", "suggestions": ["s1"]}}
}}"""
