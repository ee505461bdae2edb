"""Pure token and pair normalization — no I/O."""
from __future__ import annotations

from collections.abc import Mapping

# Wrapped / staked / bridged variants and common OCR misreads, keyed by the
# uppercased, zero-stripped symbol.
DEFAULT_TOKEN_ALIASES: dict[str, str] = {
    "WBTC": "BTC",
    "CBBTC": "BTC",
    "XBTC": "BTC",
    "WETH": "ETH",
    "WHETH": "ETH",
    "STETH": "ETH",
    "WSTETH": "ETH",
    "USDC.E": "USDC",
    "USDBC": "USDC",
    "JPL": "JLP",
    "JLF": "JLP",
}

PAIR_SEPARATOR = "/"


def merge_aliases(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the default alias table overlaid with ``extra``.

    Keys are brought to lookup form (uppercased, trailing "0" stripped), so a
    configured ``USDT0`` alias applies to the symbol ``normalize_token`` looks up.
    """
    merged = dict(DEFAULT_TOKEN_ALIASES)
    if extra:
        merged.update(
            {k.strip().upper().rstrip("0"): v.strip().upper() for k, v in extra.items()}
        )
    return merged


def normalize_token(
    raw: str | None, aliases: Mapping[str, str] | None = None
) -> str | None:
    """Canonicalize a single token symbol.

    Examples:
        "USDC0" → "USDC"
        " cbBTC " → "BTC"
        "pump" → "PUMP"
    """
    if not raw:
        return raw
    table = DEFAULT_TOKEN_ALIASES if aliases is None else aliases

    symbol = raw.strip().upper()
    # The scraped UI appends a "0" suffix to some symbols.
    symbol = symbol.rstrip("0")
    return table.get(symbol, symbol)


def split_pair(
    raw: str | None, aliases: Mapping[str, str] | None = None
) -> tuple[str, str] | None:
    """Split a pair into its two normalized tokens, or None when malformed."""
    if not raw:
        return None
    parts = [p.strip() for p in raw.split(PAIR_SEPARATOR)]
    if len(parts) != 2:
        return None
    token0 = normalize_token(parts[0], aliases)
    token1 = normalize_token(parts[1], aliases)
    if not token0 or not token1:
        return None
    return token0, token1


def normalize_pair(raw: str | None, aliases: Mapping[str, str] | None = None) -> str:
    """Canonicalize a "TOKEN0/TOKEN1" string, keeping left-right order.

    A malformed pair comes back trimmed and uppercased but unsplit, so it
    simply fails to match anything downstream.
    """
    if not raw:
        return ""
    parts = [p.strip() for p in raw.split(PAIR_SEPARATOR)]
    if len(parts) != 2:
        return raw.strip().upper()
    token0 = normalize_token(parts[0], aliases) or ""
    token1 = normalize_token(parts[1], aliases) or ""
    return f"{token0}{PAIR_SEPARATOR}{token1}"
