import re

EVM_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")

SECONDS_PER_DAY = 24 * 60 * 60

# 9999-12-31T23:59:59Z, the last second datetime can represent
MAX_UNIX_SECONDS = 253_402_300_799
MILLISECONDS_CUTOFF = 10 ** 11


def is_evm_address(address: str) -> bool:
    """EVM: 0x + 40 hex chars."""
    return bool(EVM_ADDRESS_RE.match(address or ""))


def validate_address(address: str) -> str:
    """Return the trimmed address or raise ValueError before any I/O happens."""
    address = (address or "").strip()
    if not is_evm_address(address):
        raise ValueError(f"Invalid wallet address format: {address!r}")
    return address


def contract_placeholder(address: str) -> str:
    """Display name for a contract we could not identify."""
    return f"Contract {address.lower()[:8]}..."


def to_int(raw: object, default: int = 0) -> int:
    """Parse explorer numerics ("123", 123, "0x7b", None) without raising."""
    if raw is None or raw == "":
        return default
    if isinstance(raw, int):
        return raw
    try:
        text = str(raw).strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(text)
    except (TypeError, ValueError):
        try:
            return int(float(str(raw)))
        except (TypeError, ValueError, OverflowError):
            return default


def to_unix_seconds(raw: object) -> int:
    """Explorer timestamp in seconds; millisecond values are scaled, garbage becomes 0."""
    ts = to_int(raw)
    if ts > MILLISECONDS_CUTOFF:
        ts //= 1000
    if ts < 0 or ts > MAX_UNIX_SECONDS:
        return 0
    return ts


def to_decimal_str(raw: object) -> str:
    """Normalize an explorer numeric to a base-10 integer string, "0" when missing."""
    return str(to_int(raw))


def from_base_units(raw: int | str, decimals: int = 18) -> float:
    return to_int(raw) / (10 ** decimals) if decimals else float(to_int(raw))


def wei_to_ether(wei: int | str) -> float:
    return from_base_units(wei, 18)


def clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))
