import asyncio
import os
import time
from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

import httpx

from config import Settings
from models import Erc20Holding, TokenHoldingSet, Transaction, TxCategory
from normalizer import (
    is_contract_interaction,
    merge_transactions,
    parse_explorer_rows,
    replay_nft_transfers,
    replay_token_transfers,
)
from utils import from_base_units, to_int


# ── Etherscan V2 Unified API ──────────────────────────────────────────────────
# Single endpoint + chainid param. One API key covers all chains.

ETHERSCAN_V2_BASE = "https://api.etherscan.io/v2/api"

# Free tier: 5 calls per second per API key
ETHERSCAN_RATE_LIMIT_CALLS = 5
ETHERSCAN_RATE_LIMIT_PERIOD = 1.0  # seconds


class _TokenBucket:
    """Token bucket shared by every Etherscan call a provider makes."""

    def __init__(self, calls: int, period: float) -> None:
        self._calls = calls
        self._period = period
        self._tokens: float = float(calls)
        self._last_refill = time.monotonic()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            refill = ((now - self._last_refill) / self._period) * self._calls
            self._tokens = min(self._calls, self._tokens + refill)
            self._last_refill = now

            if self._tokens < 1:
                wait = (1 - self._tokens) * (self._period / self._calls)
                await asyncio.sleep(wait)
                self._tokens = 0
                self._last_refill = time.monotonic()
            else:
                self._tokens -= 1


class ChainInfo(NamedTuple):
    name: str
    symbol: str
    chain_id: int


EVM_CHAINS: dict[str, ChainInfo] = {
    "ethereum": ChainInfo("Ethereum", "ETH", 1),
    "polygon": ChainInfo("Polygon", "POL", 137),
    "bsc": ChainInfo("BNB Chain", "BNB", 56),
    "arbitrum": ChainInfo("Arbitrum", "ETH", 42161),
    "optimism": ChainInfo("Optimism", "ETH", 10),
    "avalanche": ChainInfo("Avalanche", "AVAX", 43114),
    "base": ChainInfo("Base", "ETH", 8453),
    "fantom": ChainInfo("Fantom", "FTM", 250),
}


# ── Alchemy Token API ─────────────────────────────────────────────────────────
# Single API key, per-chain RPC endpoints.

ALCHEMY_NETWORKS: dict[str, str] = {
    "ethereum": "eth-mainnet",
    "polygon": "polygon-mainnet",
    "arbitrum": "arb-mainnet",
    "optimism": "opt-mainnet",
    "base": "base-mainnet",
    "avalanche": "avax-mainnet",
}

MAX_ALCHEMY_TOKENS = 30


# ── Base Provider ─────────────────────────────────────────────────────────────


class ChainProvider(ABC):
    """
    Chain data source consumed by the persona engine.

    Implementations must not raise for network or API errors: they log and
    return empty collections instead. Only construction may raise.
    """

    @abstractmethod
    def get_chain_type(self) -> str:
        ...

    @abstractmethod
    async def get_wallet_transactions(
        self, address: str, limit: int = 200
    ) -> list[Transaction]:
        ...

    @abstractmethod
    async def get_token_balances(self, address: str) -> TokenHoldingSet:
        ...

    @abstractmethod
    async def get_contract_interactions(
        self, address: str, limit: int = 50
    ) -> list[Transaction]:
        ...


# ── EVM Provider (Etherscan for txns, Alchemy for token balances) ────────────


class EVMChainProvider(ChainProvider):
    def __init__(self, chain_id: str, settings: Optional[Settings] = None):
        cfg = EVM_CHAINS.get(chain_id)
        if cfg is None:
            raise ValueError(
                f"Unsupported chain type: {chain_id}. "
                f"Supported: {', '.join(EVM_CHAINS)}"
            )
        settings = settings or Settings.from_env()
        self.chain_id = chain_id
        self.name = cfg.name
        self.symbol = cfg.symbol
        self.evm_chain_id = cfg.chain_id
        self.timeout = settings.http_timeout

        # Etherscan V2 config (transactions)
        self.api_base = ETHERSCAN_V2_BASE
        self.api_key = settings.etherscan_api_key or os.getenv("ETHERSCAN_API_KEY", "")
        self._rate_limiter = _TokenBucket(ETHERSCAN_RATE_LIMIT_CALLS, ETHERSCAN_RATE_LIMIT_PERIOD)

        # Alchemy config (token balance snapshots)
        alchemy_key = settings.alchemy_api_key
        alchemy_net = ALCHEMY_NETWORKS.get(chain_id)
        if alchemy_key and alchemy_net:
            self.alchemy_url = f"https://{alchemy_net}.g.alchemy.com/v2/{alchemy_key}"
        else:
            self.alchemy_url = ""

    def get_chain_type(self) -> str:
        return self.chain_id

    # ── Etherscan API helpers ──────────────────────────────────────────────

    async def _api_call(self, client: httpx.AsyncClient, params: dict) -> dict:
        await self._rate_limiter.acquire()
        params["chainid"] = self.evm_chain_id
        if self.api_key:
            params["apikey"] = self.api_key
        resp = await client.get(self.api_base, params=params, timeout=self.timeout)
        resp.raise_for_status()
        data = resp.json()

        if data.get("status") == "0" and "API Key" in str(data.get("result", "")):
            raise PermissionError(
                "ETHERSCAN_API_KEY missing or invalid. "
                "Get a free key at https://etherscan.io/apis"
            )
        return data

    async def _account_rows(
        self, client: httpx.AsyncClient, action: str, address: str, limit: int
    ) -> list[dict]:
        """One `account` list call; any failure degrades to an empty list."""
        try:
            data = await self._api_call(client, {
                "module": "account",
                "action": action,
                "address": address,
                "startblock": 0,
                "endblock": 99999999,
                "page": 1,
                "offset": limit,
                "sort": "desc",
            })
        except Exception as e:
            print(f"  [!] {self.chain_id} {action} failed: {e}")
            return []

        result = data.get("result")
        if data.get("status") != "1" or not isinstance(result, list):
            return []
        return [row for row in result if isinstance(row, dict)]

    def _parse(self, rows: list[dict], category: TxCategory) -> list[Transaction]:
        return parse_explorer_rows(rows, category, self.symbol, self.name)

    # ── Transaction History ────────────────────────────────────────────────

    async def get_wallet_transactions(
        self, address: str, limit: int = 200
    ) -> list[Transaction]:
        try:
            async with httpx.AsyncClient() as client:
                normal_rows, token_rows = await asyncio.gather(
                    self._account_rows(client, "txlist", address, limit),
                    self._account_rows(client, "tokentx", address, limit),
                )
        except Exception as e:
            print(f"  [!] {self.chain_id} transactions failed: {e}")
            return []

        merged = merge_transactions(
            self._parse(normal_rows, TxCategory.EXTERNAL),
            self._parse(token_rows, TxCategory.ERC20),
        )
        print(f"  {self.chain_id}: {len(merged)} transactions for {address[:10]}")
        return merged[:limit]

    async def get_contract_interactions(
        self, address: str, limit: int = 50
    ) -> list[Transaction]:
        try:
            async with httpx.AsyncClient() as client:
                external_rows, internal_rows = await asyncio.gather(
                    self._account_rows(client, "txlist", address, limit),
                    self._account_rows(client, "txlistinternal", address, limit),
                )
        except Exception as e:
            print(f"  [!] {self.chain_id} contract interactions failed: {e}")
            return []

        # External calls carry real gas data; internal rows only fill gaps.
        external = [
            tx for tx in self._parse(external_rows, TxCategory.EXTERNAL)
            if is_contract_interaction(tx)
        ]
        internal = self._parse(internal_rows, TxCategory.INTERNAL)
        return merge_transactions(external, internal)

    # ── Token Holdings ─────────────────────────────────────────────────────

    async def get_token_balances(self, address: str) -> TokenHoldingSet:
        try:
            async with httpx.AsyncClient() as client:
                erc20_task = (
                    self._get_alchemy_holdings(address, client)
                    if self.alchemy_url
                    else self._get_replayed_holdings(address, client)
                )
                erc20, nft_rows = await asyncio.gather(
                    erc20_task,
                    self._account_rows(client, "tokennfttx", address, 1000),
                )
        except Exception as e:
            print(f"  [!] {self.chain_id} token balances failed: {e}")
            return TokenHoldingSet()

        return TokenHoldingSet(
            erc20=erc20,
            erc721=replay_nft_transfers(address, nft_rows),
        )

    async def _get_replayed_holdings(
        self, address: str, client: httpx.AsyncClient
    ) -> list[Erc20Holding]:
        rows = await self._account_rows(client, "tokentx", address, 1000)
        return replay_token_transfers(address, rows)

    async def _get_alchemy_holdings(
        self, address: str, client: httpx.AsyncClient
    ) -> list[Erc20Holding]:
        try:
            # Step 1: Get ALL token balances in one call
            resp = await client.post(self.alchemy_url, json={
                "jsonrpc": "2.0",
                "method": "alchemy_getTokenBalances",
                "params": [address, "erc20"],
                "id": 1,
            }, timeout=self.timeout)
            data = resp.json()

            all_balances = data.get("result", {}).get("tokenBalances", [])

            non_zero = []
            for tb in all_balances:
                hex_bal = tb.get("tokenBalance", "0x0")
                if hex_bal and hex_bal != "0x0" and int(hex_bal, 16) > 0:
                    non_zero.append(tb)

            if not non_zero:
                return []

            # Step 2: Batch fetch metadata for all non-zero tokens (one HTTP call)
            batch = [
                {
                    "jsonrpc": "2.0",
                    "method": "alchemy_getTokenMetadata",
                    "params": [tb["contractAddress"]],
                    "id": i,
                }
                for i, tb in enumerate(non_zero[:MAX_ALCHEMY_TOKENS])
            ]

            meta_resp = await client.post(self.alchemy_url, json=batch, timeout=self.timeout)
            meta_results = meta_resp.json()

            # Handle both list (batch) and single dict (error) responses
            if not isinstance(meta_results, list):
                meta_results = [meta_results]

            holdings: list[Erc20Holding] = []
            for i, tb in enumerate(non_zero[:MAX_ALCHEMY_TOKENS]):
                meta = {}
                if i < len(meta_results):
                    meta = meta_results[i].get("result", {}) or {}

                decimals = 18 if meta.get("decimals") is None else to_int(meta["decimals"], 18)
                symbol = meta.get("symbol") or ""

                # Skip tokens with no symbol (likely spam/scam)
                if not symbol:
                    continue

                holdings.append(Erc20Holding(
                    contract_address=tb["contractAddress"].lower(),
                    symbol=symbol,
                    name=meta.get("name") or symbol,
                    decimals=decimals,
                    balance=round(from_base_units(tb["tokenBalance"], decimals), 6),
                ))
            return holdings

        except Exception as e:
            print(f"  [!] Alchemy token balances failed for {self.chain_id}: {e}")
            return []


# ── Factory ───────────────────────────────────────────────────────────────────


def get_provider(
    chain_id: str, settings: Optional[Settings] = None
) -> Optional[ChainProvider]:
    if chain_id in EVM_CHAINS:
        return EVMChainProvider(chain_id, settings)
    return None
