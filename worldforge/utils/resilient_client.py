import asyncio

from google.genai import Client as GenAIClient

from worldforge.config import get_settings
from worldforge.utils.auth import get_api_key, mark_key_exhausted
from worldforge.utils.logging_config import get_logger

logger = get_logger("worldforge.resilient_client")


class RetriesExhausted(Exception):
    pass


def classify_error(exc: Exception) -> str | None:
    """'rate_limit', 'overload', or None when the error is not retryable."""
    error_str = str(exc).upper()
    if "429" in error_str or "RESOURCE_EXHAUSTED" in error_str:
        return "rate_limit"
    if "503" in error_str or "UNAVAILABLE" in error_str:
        return "overload"
    return None


class ResilientClient:
    """
    Wraps google.genai.Client so that ``client.aio.models.<method>`` retries on
    429 / 503 with exponential backoff, rotating the API key on rate limits.
    """

    def __init__(self, api_key=None, http_options=None, client_factory=GenAIClient, **kwargs):
        self._current_key = api_key or get_api_key()
        self._http_options = http_options
        self._client_factory = client_factory
        self._kwargs = kwargs
        self._active_client = client_factory(api_key=self._current_key, http_options=http_options, **kwargs)

        self._aio_proxy = AioProxy(self)

    @property
    def aio(self):
        return self._aio_proxy

    def rotate(self):
        # Mark the current key as exhausted before getting a new one
        mark_key_exhausted(self._current_key)

        logger.info("Rotating API key. Old key: %s...", self._current_key[:8])
        self._current_key = get_api_key()
        self._active_client = self._client_factory(
            api_key=self._current_key, http_options=self._http_options, **self._kwargs
        )


class AioProxy:
    def __init__(self, parent: ResilientClient):
        self._parent = parent
        self._models_proxy = ModelsProxy(parent)

    @property
    def models(self):
        return self._models_proxy


class ModelsProxy:
    def __init__(self, parent: ResilientClient):
        self._parent = parent

    def __getattr__(self, name):
        real_method = getattr(self._parent._active_client.aio.models, name)
        if callable(real_method):
            return self._create_wrapper(name)
        return real_method

    def _create_wrapper(self, method_name):
        async def wrapper(*args, **kwargs):
            settings = get_settings()
            retries = settings.resilient_max_retries
            base_delay = settings.resilient_base_delay
            for attempt in range(retries):
                try:
                    # Always get the fresh method from the active client
                    current_client = self._parent._active_client
                    method = getattr(current_client.aio.models, method_name)
                    return await method(*args, **kwargs)
                except Exception as e:
                    kind = classify_error(e)
                    if kind is None:
                        raise

                    delay = base_delay * (2 ** attempt)
                    error_type = "429 Rate Limit" if kind == "rate_limit" else "503 Server Overload"
                    logger.warning(
                        "%s for %s. Attempt %d/%d. Backoff: %ds",
                        error_type, method_name, attempt + 1, retries, delay,
                    )
                    if kind == "rate_limit":
                        self._parent.rotate()  # Only rotate keys on rate limit, not overload
                    await asyncio.sleep(delay)
            raise RetriesExhausted(f"ResilientClient: exhausted {retries} retries for {method_name}.")
        return wrapper
