"""OpenAI-compatible embeddings client wrapper with error handling."""
from typing import List, Optional
import httpx
import structlog

from arcana import config

logger = structlog.get_logger()


class EmbeddingAPIError(RuntimeError):
    """Raised when the embedding API answers with an unusable payload."""


class OpenAIEmbeddingClient:
    """Async client for the `/embeddings` endpoint of an OpenAI-style API."""

    def __init__(
        self,
        api_key: str = None,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the embeddings client.

        Args:
            api_key: Bearer token (defaults to config.OPENAI_API_KEY)
            base_url: API base URL (defaults to config.OPENAI_BASE_URL)
            model: Embedding model (defaults to config.EMBEDDING_MODEL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport, mainly for tests
        """
        self.api_key = api_key or config.OPENAI_API_KEY
        self.base_url = (base_url or config.OPENAI_BASE_URL).rstrip("/")
        self.model = model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.EMBEDDING_TIMEOUT
        self.transport = transport

    async def embeddings(self, text: str) -> List[float]:
        """Generate an embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            The provider's embedding vector, unchanged

        Raises:
            httpx.HTTPError: On transport errors, timeouts and non-2xx responses
            EmbeddingAPIError: If the response body is not a usable embedding
        """
        payload = {
            "model": self.model,
            "input": text,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                logger.debug(
                    "embedding_request",
                    model=self.model,
                    text_length=len(text),
                )

                response = await client.post(
                    f"{self.base_url}/embeddings",
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()

                try:
                    data = response.json()
                except ValueError as e:
                    raise EmbeddingAPIError(f"Embedding response is not JSON: {e}") from e

        except httpx.HTTPError as e:
            logger.error(
                "embedding_http_error",
                error=str(e),
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            )
            raise

        embedding = _extract_embedding(data)

        logger.debug(
            "embedding_response",
            model=self.model,
            dimension=len(embedding),
        )

        return embedding


def _extract_embedding(data) -> List[float]:
    """Pull `data[0].embedding` out of an embeddings response."""
    try:
        embedding = data["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as e:
        raise EmbeddingAPIError(f"Malformed embedding response: {e!r}") from e

    if not isinstance(embedding, list) or not embedding:
        raise EmbeddingAPIError("Embedding response contained no vector")

    if not all(
        isinstance(value, (int, float)) and not isinstance(value, bool)
        for value in embedding
    ):
        raise EmbeddingAPIError("Embedding response contained non-numeric values")

    return [float(value) for value in embedding]
