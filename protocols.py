import asyncio
from collections import Counter
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from models import MatchSource, ProtocolCategory, ProtocolEntry, ProtocolMatch, Transaction
from utils import contract_placeholder


# ── Static Protocol Tables ────────────────────────────────────────────────────
# Same address can mean different things on different chains: always look up
# through the chain first.

_RAW_PROTOCOLS: dict[str, dict[str, tuple[str, ProtocolCategory]]] = {
    "ethereum": {
        "0x7a250d5630b4cf539739df2c5dacb4c659f2488d": ("Uniswap V2 Router", ProtocolCategory.DEFI),
        "0x68b3465833fb72a70ecdf485e0e4c7bd8665fc45": ("Uniswap V3 Router", ProtocolCategory.DEFI),
        "0xe592427a0aece92de3edee1f18e0157c05861564": ("Uniswap V3 Router 2", ProtocolCategory.DEFI),
        "0x3fc91a3afd70395cd496c647d5a6cc9d4b2b7fad": ("Uniswap Universal Router", ProtocolCategory.DEFI),
        "0x7d2768de32b0b80b7a3454c06bdac94a69ddc7a9": ("Aave Lending Pool", ProtocolCategory.DEFI),
        "0x5d3a536e4d6dbd6114cc1ead35777bab948e3643": ("Compound cDAI", ProtocolCategory.DEFI),
        "0x4ddc2d193948926d02f9b1fe9e1daa0718270ed5": ("Compound cETH", ProtocolCategory.DEFI),
        "0x1f573d6fb3f13d689ff844b4ce37794d79a7ff1c": ("Bancor Network", ProtocolCategory.DEFI),
        "0xd9e1ce17f2641f24ae83637ab66a2cca9c378b9f": ("SushiSwap Router", ProtocolCategory.DEFI),
        "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": ("WETH", ProtocolCategory.DEFI),
        "0x1111111254fb6c44bac0bed2854e76f90643097d": ("1inch Router", ProtocolCategory.DEFI),
        "0xdef1c0ded9bec7f1a1670819833240f027b25eff": ("0x Protocol", ProtocolCategory.DEFI),
        "0x00000000219ab540356cbb839cbe05303d7705fa": ("Ethereum 2.0 Deposit", ProtocolCategory.STAKING),
        "0xae7ab96520de3a18e5e111b5eaab095312d7fe84": ("Lido stETH", ProtocolCategory.STAKING),
        "0x7be8076f4ea4a4ad08075c2508e481d6c946d12b": ("OpenSea Registry", ProtocolCategory.NFT),
        "0x00000000006c3852cbef3e08e8df289169ede581": ("OpenSea Seaport", ProtocolCategory.NFT),
        "0x7f268357a8c2552623316e2562d90e642bb538e5": ("Rarible Exchange", ProtocolCategory.NFT),
        "0xb47e3cd837ddf8e4c57f05d70ab865de6e193bbb": ("CryptoPunks", ProtocolCategory.NFT),
        "0x06012c8cf97bead5deae237070f9587f8e7a266d": ("CryptoKitties", ProtocolCategory.GAMING),
        "0xc0da01a04c3f3e0be433606045bb7017a7323e38": ("Compound Governance", ProtocolCategory.GOVERNANCE),
        "0x9f8f72aa9304c8b593d555f12ef6589cc3a579a2": ("Maker Token", ProtocolCategory.GOVERNANCE),
        "0xa0c68c638235ee32657e8f720a23cec1bfc77c77": ("Polygon PoS Bridge", ProtocolCategory.BRIDGE),
        "0x4dbd4fc535ac27206064b68ffcf827b0a60bab3f": ("Arbitrum Delayed Inbox", ProtocolCategory.BRIDGE),
    },
    "polygon": {
        "0xa5e0829caced8ffdd4de3c43696c57f7d7a678ff": ("QuickSwap Router", ProtocolCategory.DEFI),
        "0x831753dd7087cac61ab5644b308642cc1c33dc13": ("QuickSwap Factory", ProtocolCategory.DEFI),
        "0x1b02da8cb0d097eb8d57a175b88c7d8b47997506": ("SushiSwap Router", ProtocolCategory.DEFI),
        "0x8dff5e27ea6b7ac08ebfdf9eb090f32ee9a30fcf": ("Aave Polygon", ProtocolCategory.DEFI),
        "0x2791bca1f2de4661ed88a30c99a7a9449aa84174": ("USDC Polygon", ProtocolCategory.DEFI),
        "0xc2132d05d31c914a87c6611c10748aeb04b58e8f": ("USDT Polygon", ProtocolCategory.DEFI),
        "0x0d500b1d8e8ef31e21c99d1db9a6444d3adf1270": ("WMATIC", ProtocolCategory.DEFI),
        "0x1111111254fb6c44bac0bed2854e76f90643097d": ("1inch Router", ProtocolCategory.DEFI),
        "0x5757371414417b8c6caad45baef941abc7d3ab32": ("Curve Polygon", ProtocolCategory.DEFI),
        "0x445fe580ef8d70ff569ab36e80c647af338db351": ("Balancer Polygon", ProtocolCategory.DEFI),
        "0x60ae616a2155ee3d9a68541ba4544862310933d4": ("OpenSea Polygon", ProtocolCategory.NFT),
    },
    "bsc": {
        "0x10ed43c718714eb63d5aa57b78b54704e256024e": ("PancakeSwap V2 Router", ProtocolCategory.DEFI),
        "0x13f4ea83d0bd40e75c8222255bc855a974568dd4": ("PancakeSwap V3 Router", ProtocolCategory.DEFI),
        "0xd99d1c33f9fc3444f8101754abc46c52416550d1": ("PancakeSwap V1 Router", ProtocolCategory.DEFI),
        "0x05ff2b0db69458a0750badebc4f9e13add608c7f": ("PancakeSwap Factory", ProtocolCategory.DEFI),
        "0x58f876857a02d6762e0101bb5c46a8c1ed44dc16": ("Venus Protocol", ProtocolCategory.DEFI),
        "0x55d398326f99059ff775485246999027b3197955": ("USDT BSC", ProtocolCategory.DEFI),
        "0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c": ("WBNB", ProtocolCategory.DEFI),
        "0x8ac76a51cc950d9822d68b83fe1ad97b32cd580d": ("USDC BSC", ProtocolCategory.DEFI),
        "0x1af3f329e8be154074d8769d1ffa4ee058b1dbc3": ("DAI BSC", ProtocolCategory.DEFI),
        "0x1111111254fb6c44bac0bed2854e76f90643097d": ("1inch Router", ProtocolCategory.DEFI),
        "0x1b02da8cb0d097eb8d57a175b88c7d8b47997506": ("SushiSwap BSC", ProtocolCategory.DEFI),
        "0x16b9a82891338f9ba80e2d6970fdda79d1eb0dae": ("Biswap Router", ProtocolCategory.DEFI),
        "0x3a6d8ca21d1cf76f653a67577fa0d27453350dd8": ("BakerySwap Router", ProtocolCategory.DEFI),
        "0xcf0febd3f17cef5b47b0cd257acf6025c5bff3b7": ("ApeSwap Router", ProtocolCategory.DEFI),
    },
}

PROTOCOLS: Mapping[str, Mapping[str, ProtocolEntry]] = MappingProxyType({
    chain: MappingProxyType({
        addr: ProtocolEntry(address=addr, name=name, category=category)
        for addr, (name, category) in entries.items()
    })
    for chain, entries in _RAW_PROTOCOLS.items()
})

# Sanctioned mixers and known drainer contracts
RISKY_ADDRESSES: Mapping[str, frozenset[str]] = MappingProxyType({
    "ethereum": frozenset({
        "0xd90e2f925da726b50c4ed8d0fb90ad053324f31b",  # Tornado Cash Router
        "0x12d66f87a04a9e220743712ce6d9bb1b5616b8fc",  # Tornado Cash 0.1 ETH
        "0x47ce0c6ed5b0ce3d3a51fdb1c52dc66a7c3c2936",  # Tornado Cash 1 ETH
        "0x910cbd523d972eb0a6f4cae4618ad62622b39dbf",  # Tornado Cash 10 ETH
        "0xa160cdab225685da1d56aa342ad8841c3b53f291",  # Tornado Cash 100 ETH
    }),
    "bsc": frozenset({
        "0x0d5550d52428e7e3175bfc9550207e4ad3859b17",  # Tornado Cash 1 BNB
    }),
})

_EMPTY: Mapping[str, ProtocolEntry] = MappingProxyType({})

# Oracle answers outside the closed category set
_CATEGORY_ALIASES = {
    "exchange": ProtocolCategory.DEFI,
    "dex": ProtocolCategory.DEFI,
    "lending": ProtocolCategory.DEFI,
    "marketplace": ProtocolCategory.NFT,
}


def risky_addresses_for(chain: str) -> frozenset[str]:
    return RISKY_ADDRESSES.get(chain, frozenset())


def coerce_category(raw: object) -> ProtocolCategory:
    if isinstance(raw, ProtocolCategory):
        return raw
    text = str(raw or "").strip().lower()
    try:
        return ProtocolCategory(text)
    except ValueError:
        return _CATEGORY_ALIASES.get(text, ProtocolCategory.UNKNOWN)


def rank_contracts(interactions: Iterable[Transaction]) -> list[tuple[str, int]]:
    """Distinct destinations by interaction count, ties in first-seen order."""
    counts: Counter[str] = Counter()
    for tx in interactions:
        if tx.to_address:
            counts[tx.to_address.lower()] += 1
    # Counter keeps insertion order and sorted() is stable
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def format_protocol(match: ProtocolMatch, count: int) -> str:
    return f"{match.name} ({count} txns)"


# ── Resolver ──────────────────────────────────────────────────────────────────


class ProtocolResolver:
    """Exact table match first, classification oracle second, placeholder last."""

    def __init__(self, oracle=None, confidence_threshold: int = 60):
        self.oracle = oracle
        self.confidence_threshold = confidence_threshold

    def lookup(self, chain: str, address: str) -> Optional[ProtocolEntry]:
        return PROTOCOLS.get(chain, _EMPTY).get(address.lower())

    async def resolve(
        self, chain: str, address: str, interaction_count: int = 0
    ) -> ProtocolMatch:
        address = address.lower()
        entry = self.lookup(chain, address)
        if entry:
            return ProtocolMatch(
                address=address,
                name=entry.name,
                category=entry.category,
                confidence=100,
                source=MatchSource.TABLE,
            )

        if self.oracle is None:
            return self._placeholder(address, 0)

        try:
            guess = await asyncio.to_thread(
                self.oracle.classify_protocol, address, chain, interaction_count
            )
            if not isinstance(guess, ProtocolMatch):
                guess = ProtocolMatch.model_validate({
                    **guess,
                    "address": address,
                    "category": coerce_category(guess.get("category")),
                })
        except Exception as e:
            print(f"  [!] Protocol classification failed for {address[:10]}: {e}")
            return self._placeholder(address, 0)

        if guess.confidence > self.confidence_threshold and guess.name:
            return ProtocolMatch(
                address=address,
                name=guess.name,
                category=coerce_category(guess.category),
                confidence=guess.confidence,
                source=MatchSource.ORACLE,
            )
        return self._placeholder(address, guess.confidence)

    async def top_protocols(
        self, chain: str, interactions: list[Transaction], limit: int = 3
    ) -> list[tuple[ProtocolMatch, int]]:
        ranked = rank_contracts(interactions)[:limit]
        matches = await asyncio.gather(*(
            self.resolve(chain, addr, count) for addr, count in ranked
        ))
        return [(match, count) for match, (_, count) in zip(matches, ranked)]

    @staticmethod
    def _placeholder(address: str, confidence: int) -> ProtocolMatch:
        return ProtocolMatch(
            address=address,
            name=contract_placeholder(address),
            category=ProtocolCategory.UNKNOWN,
            confidence=max(0, min(100, confidence)),
            source=MatchSource.FALLBACK,
        )
