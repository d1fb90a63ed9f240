"""
Pydantic schemas for the image processing endpoint.
"""
from pydantic import BaseModel

from .auth import LimitsOut


class ColoriseOut(BaseModel):
    """
    Response model for a successful restoration.
    """
    success: bool = True
    result: str  # URL of the restored image
    requestId: str  # Correlation id for this request
    processingTimeMs: int  # Time spent waiting on the provider(s)
    modelUsed: str  # Provider model that produced the result
    limits: LimitsOut
