import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        print(f"  [!] {name}={raw!r} is not an integer, using {default}")
        return default


class Settings(BaseModel):
    """Runtime knobs for the persona engine and its data sources."""

    etherscan_api_key: str = ""
    alchemy_api_key: str = ""
    ai_provider: str = "anthropic"
    transaction_limit: int = Field(200, ge=1)
    interaction_limit: int = Field(50, ge=1)
    top_protocols_limit: int = Field(3, ge=1)
    oracle_confidence_threshold: int = Field(60, ge=0, le=100)
    security_tool_threshold: int = Field(50, ge=0, le=100)
    risky_interaction_penalty: int = Field(10, ge=0)
    chat_questions_per_session: int = Field(1, ge=0)
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            etherscan_api_key=os.getenv("ETHERSCAN_API_KEY", ""),
            alchemy_api_key=os.getenv("ALCHEMY_API_KEY", ""),
            ai_provider=os.getenv("AI_PROVIDER", "anthropic").lower(),
            transaction_limit=_env_int("TRANSACTION_LIMIT", 200),
            interaction_limit=_env_int("INTERACTION_LIMIT", 50),
            top_protocols_limit=_env_int("TOP_PROTOCOLS_LIMIT", 3),
            oracle_confidence_threshold=_env_int("ORACLE_CONFIDENCE_THRESHOLD", 60),
            security_tool_threshold=_env_int("SECURITY_TOOL_THRESHOLD", 50),
            risky_interaction_penalty=_env_int("RISKY_INTERACTION_PENALTY", 10),
            chat_questions_per_session=_env_int("CHAT_QUESTIONS_PER_SESSION", 1),
            http_timeout=float(_env_int("HTTP_TIMEOUT", 30)),
        )
