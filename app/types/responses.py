from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class AtomicSwapResponse(BaseModel):
    success: bool = Field(default=True, description="Whether the swap settled")
    swapId: str = Field(description="Swap identifier assigned by the swap service")
    inputAmount: str = Field(description="Amount sent, formatted as '<amount> <TICKER>'")
    outputAmount: str = Field(description="Amount delivered, formatted as '<amount> <unit>'")
    tokenUsed: str = Field(description="Ticker of the ledger token")
    tokenAddress: str = Field(description="Ledger token address")
    finalState: str = Field(description="Terminal swap state")
    lightningPaymentHash: Optional[str] = Field(default=None, description="Payment hash or preimage of the Lightning leg")
    transactionId: Optional[str] = Field(default=None, description="Ledger transaction id")
    lightningDestination: str = Field(description="Lightning destination that was paid")
    message: str = Field(description="Human-readable summary")
    requestId: str = Field(description="Correlation id")
    timestamp: str = Field(description="ISO-8601 response time")


class ErrorDetail(BaseModel):
    code: str = Field(description="Stable error code")
    message: str = Field(description="Caller-safe message")
    retryable: bool = Field(default=False, description="Whether retrying may succeed")
    swapId: Optional[str] = Field(default=None, description="Swap identifier when a session existed")
    finalState: Optional[str] = Field(default=None, description="Swap state when the request ended")
    retryAfter: Optional[int] = Field(default=None, description="Seconds until the rate limit window resets")
    requestId: Optional[str] = Field(default=None, description="Correlation id")
    timestamp: str = Field(description="ISO-8601 error time")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Diagnostics, non-production only")


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail


class SwapStatusResponse(BaseModel):
    success: bool = True
    swapId: str
    state: str
    terminal: bool
    refundable: bool
    inputAmount: Optional[str] = None
    outputAmount: Optional[str] = None
    lightningPaymentHash: Optional[str] = None
    history: List[Dict[str, Any]] = Field(default_factory=list)
    requestId: str
    timestamp: str
