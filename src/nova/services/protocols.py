"""
Service provider protocols (interfaces)

Define contracts for the external collaborators: the text-generation API and
the image host. Implementations are picked by configuration in the factories
(``nova.services.llm``, ``nova.services.image_host``).
"""
from typing import Protocol


class LLMProvider(Protocol):
    """
    Large Language Model provider interface

    Implementations:
    - GeminiLLMProvider: Google Generative Language REST API
    """

    async def generate(self, prompt: str, **kwargs) -> str:
        """
        Generate a completion for a single prompt

        Args:
            prompt: Persona-framed prompt text
            **kwargs: Provider-specific options

        Returns:
            Generated text, stripped

        Raises:
            httpx.HTTPError: Transport failure or non-2xx status
            EmptyResponseError: Reply had no text
        """
        ...

    async def aclose(self) -> None:
        """Release pooled connections"""
        ...


class ImageHost(Protocol):
    """
    Image hosting interface for assistant avatars

    Implementations:
    - LocalImageHost: Files under UPLOAD_DIR, served at /uploads
    - CloudinaryImageHost: Cloudinary SDK upload
    """

    async def upload(self, filename: str, content: bytes, content_type: str) -> str:
        """
        Store an image

        Args:
            filename: Sanitized client filename (extension is kept)
            content: Raw image bytes
            content_type: MIME type reported by the client

        Returns:
            Public URL of the stored image

        Raises:
            RuntimeError: Upload failed
        """
        ...
