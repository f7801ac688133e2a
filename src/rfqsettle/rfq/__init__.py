"""RFQ settlement contract."""

from rfqsettle.rfq.contract import ContractTransaction, RfqContract
from rfqsettle.rfq.fees import FEE_PRECISION, GLOBAL_FEE_CHAIN_ID, compute_fee, resolve_fee_perc
from rfqsettle.rfq.tokens import mint

__all__ = [
    "FEE_PRECISION",
    "GLOBAL_FEE_CHAIN_ID",
    "ContractTransaction",
    "RfqContract",
    "compute_fee",
    "mint",
    "resolve_fee_perc",
]
