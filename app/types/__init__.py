from .requests import AtomicSwapRequest
from .responses import AtomicSwapResponse, ErrorDetail, ErrorResponse, SwapStatusResponse

__all__ = [
    "AtomicSwapRequest",
    "AtomicSwapResponse",
    "ErrorDetail",
    "ErrorResponse",
    "SwapStatusResponse",
]
