import io
import os
import time
from contextlib import asynccontextmanager
from typing import Literal

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastmcp import FastMCP

load_dotenv()

from agent import WalletInsightsAgent
from chain_providers import EVM_CHAINS, get_provider
from config import Settings
from exports import to_csv, to_excel, to_json
from models import (
    ChatRequest,
    ChatResult,
    ChatSession,
    DetailedAnalysis,
    DetailedAnalysisRequest,
    HealthResponse,
    PersonaResponse,
)
from persona_engine import PersonaEngine
from utils import validate_address

VERSION = "1.0.0"


# ── MCP Server (mounted at /mcp) ─────────────────────────────────────────────

mcp = FastMCP(
    name="Wallet Persona Engine",
    instructions=(
        "Builds a behavioral persona for an EVM wallet: archetype mix, activity, "
        "security and risk scores, top protocols and recommended dapps."
    ),
)


@mcp.tool()
async def wallet_persona_mcp(address: str, chain: str = "ethereum") -> dict:
    """
    Generate a wallet persona.

    Args:
        address: EVM wallet address (0x followed by 40 hex characters).
        chain:   Chain ID, e.g. ethereum, polygon or bsc.

    Returns:
        The persona record including AI insights when available.
    """
    persona = await get_engine(chain).generate_persona(address)
    return persona.model_dump(mode="json", exclude={"transactions"})


# ── Lifespan ──────────────────────────────────────────────────────────────────

settings: Settings = Settings()
insights_agent: WalletInsightsAgent | None = None
engines: dict[str, PersonaEngine] = {}


def get_engine(chain: str) -> PersonaEngine:
    """Engines are created once per chain and hold no per-request state."""
    chain = chain.lower()
    if chain not in engines:
        provider = get_provider(chain, settings)
        if provider is None:
            raise ValueError(
                f"Unsupported chain '{chain}'. Supported: {', '.join(EVM_CHAINS)}"
            )
        engines[chain] = PersonaEngine(provider, insights_agent, settings)
    return engines[chain]


@asynccontextmanager
async def lifespan(app: FastAPI):
    global settings, insights_agent
    settings = Settings.from_env()
    engines.clear()
    try:
        insights_agent = WalletInsightsAgent(settings.ai_provider)
    except Exception as e:
        print(f"  [!] AI insights disabled: {e}")
        insights_agent = None
    if not settings.etherscan_api_key:
        print("  [!] ETHERSCAN_API_KEY is not set; explorer feeds will come back empty")
    print("  Wallet Persona Engine ready")
    yield
    print("  Shutting down.")


# ── App ───────────────────────────────────────────────────────────────────────

app = FastAPI(
    title="Wallet Persona Engine",
    description=(
        "Derives a behavioral persona for an EVM wallet from its transactions, "
        "token holdings and contract interactions, with AI-powered protocol "
        "identification, insights and wallet chat."
    ),
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/mcp", mcp.http_app())


# ── Info ──────────────────────────────────────────────────────────────────────


@app.get("/health", response_model=HealthResponse, tags=["Info"])
def health():
    return HealthResponse(
        status="ok",
        version=VERSION,
        chains=list(EVM_CHAINS),
        ai=insights_agent is not None,
    )


# ── Persona ───────────────────────────────────────────────────────────────────


@app.get("/api/persona/{chain}/{address}", tags=["Persona"])
async def wallet_persona(
    chain: str,
    address: str,
    format: Literal["json", "csv", "excel"] = Query(
        default="json",
        description="Output format: json (default) | csv | excel",
    ),
    include_insights: bool = Query(
        default=True,
        description="Attach AI-generated insights to the persona",
    ),
):
    """Analyze a wallet on one chain and return its persona."""
    start = time.time()

    try:
        engine = get_engine(chain)
        persona = await engine.generate_persona(address, include_insights=include_insights)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    elapsed = int((time.time() - start) * 1000)
    short = persona.address[:12]

    if format == "csv":
        return StreamingResponse(
            content=io.BytesIO(to_csv(persona)),
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="persona_{short}.csv"'
            },
        )

    if format == "excel":
        return StreamingResponse(
            content=io.BytesIO(to_excel(persona)),
            media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            headers={
                "Content-Disposition": f'attachment; filename="persona_{short}.xlsx"'
            },
        )

    return PersonaResponse(
        success=True,
        address=persona.address,
        chain=persona.chain,
        persona=persona,
        processing_time_ms=elapsed,
    )


@app.get("/api/persona/{chain}/{address}/export.json", tags=["Persona"])
async def wallet_persona_json(chain: str, address: str):
    try:
        persona = await get_engine(chain).generate_persona(address, include_insights=False)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StreamingResponse(
        content=io.BytesIO(to_json(persona)),
        media_type="application/json",
        headers={
            "Content-Disposition": f'attachment; filename="persona_{persona.address[:12]}.json"'
        },
    )


# ── Chat & Detailed Analysis ──────────────────────────────────────────────────


@app.post("/api/chat/{chain}/{address}", response_model=ChatResult, tags=["Chat"])
async def wallet_chat(chain: str, address: str, req: ChatRequest):
    """
    Ask a question about an analyzed wallet.

    The client carries `remaining_questions` between calls; the server keeps
    no chat state.
    """
    try:
        engine = get_engine(chain)
        address = validate_address(address)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    session = ChatSession(remaining_questions=req.remaining_questions)
    wallet_context = {"address": address, "chain": chain, **req.wallet_data}
    response = await engine.chat(req.question, wallet_context, req.history, session)
    return ChatResult(chat=response, remaining_questions=session.remaining_questions)


@app.post("/api/detailed-analysis", response_model=DetailedAnalysis, tags=["Chat"])
async def detailed_analysis(req: DetailedAnalysisRequest):
    try:
        engine = get_engine(req.persona.chain)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return await engine.detailed_analysis(req.persona)


# ── Entry point ───────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("APP_ENV", "development") == "development",
    )
