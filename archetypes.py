import math
from types import MappingProxyType
from typing import Mapping

from models import Archetype

# Wallets with no classifiable signal are presumed passive holders, not a
# uniform mix. Must sum to 100.00.
DEFAULT_DISTRIBUTION: Mapping[Archetype, float] = MappingProxyType({
    Archetype.LONG_TERM_INVESTOR: 40.00,
    Archetype.DEFI_USER: 20.00,
    Archetype.TRADER: 15.00,
    Archetype.NFT_COLLECTOR: 10.00,
    Archetype.GOVERNANCE_PARTICIPANT: 7.50,
    Archetype.DEVELOPER: 5.00,
    Archetype.GAMING_ENTHUSIAST: 2.50,
})

_ORDER = list(Archetype)


def normalize_archetypes(raw: Mapping[Archetype, float]) -> dict[Archetype, float]:
    """
    Convert raw archetype scores into percentages with two decimals.

    Shares are allocated in hundredths of a percent with the largest
    remainder method, so the result always sums to exactly 100.00.
    """
    scores = {a: max(0.0, float(raw.get(a, 0.0))) for a in _ORDER}
    total = sum(scores.values())
    if total <= 0:
        return {a: DEFAULT_DISTRIBUTION[a] for a in _ORDER}

    exact = {a: scores[a] / total * 10_000 for a in _ORDER}
    units = {a: math.floor(exact[a]) for a in _ORDER}
    leftover = 10_000 - sum(units.values())

    by_remainder = sorted(_ORDER, key=lambda a: exact[a] - units[a], reverse=True)
    for a in by_remainder[:leftover]:
        units[a] += 1

    return {a: units[a] / 100 for a in _ORDER}


def dominant_archetype(distribution: Mapping[Archetype, float]) -> Archetype:
    """Highest weight wins; ties go to the earlier archetype."""
    return max(_ORDER, key=lambda a: (distribution.get(a, 0.0), -_ORDER.index(a)))
