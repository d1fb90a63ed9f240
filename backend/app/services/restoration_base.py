"""
Image Restoration Service Abstract Interface

Provides a unified interface for image restoration providers (Replicate models / others).
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class ImagePayload:
    """Uploaded image as received from the client"""
    data: bytes
    content_type: str
    filename: str = "image"

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class RestorationResult:
    """Successful restoration"""
    result_url: str  # Where the restored image can be downloaded
    elapsed_ms: int  # Wall-clock time spent in the provider
    model_id: str  # Model that produced the result


class RestorationError(RuntimeError):
    """
    Provider-side failure.

    The message is what the failure classifier inspects, so adapters should
    keep the upstream wording (e.g. "rate limit", "invalid input", "timed out").
    """

    def __init__(self, message: str, model_id: str = ""):
        super().__init__(message)
        self.model_id = model_id


class RestorationService(ABC):
    """Image Restoration Service Abstract Base Class"""

    @abstractmethod
    async def restore(self, image: ImagePayload) -> RestorationResult:
        """
        Restore/colorise an image

        Parameters:
        - image: Uploaded image payload

        Returns:
        - RestorationResult: URL of the result, elapsed time, model id

        Raises:
        - RestorationError (or any exception) on failure
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if service is available"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Model identifier (e.g., "flux-kontext-apps/restore-image")"""
        pass
