"""Fee percentage resolution and computation."""

# Fee percentages are expressed in millionths of the amount
FEE_PRECISION = 1_000_000

# Chain id that addresses the global default in set_fee_perc
GLOBAL_FEE_CHAIN_ID = 0


def resolve_fee_perc(override: int, global_perc: int) -> int:
    """Per-chain override when set (non-zero), else the global default."""
    return override if override else global_perc


def compute_fee(amount: int, fee_perc: int) -> int:
    """``amount * fee_perc / FEE_PRECISION`` with floor division."""
    return amount * fee_perc // FEE_PRECISION
