from typing import Optional, Union
from pydantic import BaseModel, Field


class AtomicSwapRequest(BaseModel):
    """Documented shape of POST /api/atomic-swap.

    The endpoint validates the raw body itself so that error codes follow
    the admission order; this model feeds the OpenAPI schema.
    """

    amountSats: Union[int, str] = Field(description="Positive integer amount in the source token's smallest unit")
    lightningDestination: str = Field(description="Lightning invoice, Lightning address, or LNURL")
    tokenAddress: str = Field(description="Starknet token address (0x + 64 hex characters)")
    exactIn: bool = Field(default=False, description="True when amountSats is the amount sent rather than received")
    comment: Optional[str] = Field(default=None, description="Optional payment comment")
