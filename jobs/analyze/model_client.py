import logging
from typing import Any, Dict, Optional, Protocol

import requests

logger = logging.getLogger(__name__)


class ModelClientError(Exception):
    pass


class RateLimitError(ModelClientError):
    """The model API answered HTTP 429."""


class ModelResponseError(ModelClientError):
    pass


class ModelClient(Protocol):
    def generate(self, prompt: str) -> str:
        ...


class _HTTPModelClient:
    def __init__(self, timeout: float = 120, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        try:
            r = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ModelResponseError(f"Model request failed: {e}") from e

        if r.status_code == 429:
            raise RateLimitError(f"Model API rate limit hit ({url})")
        try:
            r.raise_for_status()
        except requests.HTTPError as e:
            raise ModelResponseError(f"Model API returned {r.status_code}: {r.text[:200]}") from e

        try:
            return r.json()
        except ValueError as e:
            raise ModelResponseError("Model API returned a non-JSON envelope") from e

    def close(self) -> None:
        self.session.close()


class OllamaClient(_HTTPModelClient):
    def __init__(
        self,
        model: str = "mistral:7b-instruct",
        base_url: str = "http://127.0.0.1:11434",
        timeout: float = 120,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout=timeout, session=session)
        self.model = model
        self.base_url = base_url.rstrip("/")

    def generate(self, prompt: str) -> str:
        # No `format: "json"` here: it forces a top-level object and the
        # classifier expects an array.
        data = self._post(
            f"{self.base_url}/api/generate",
            {"model": self.model, "prompt": prompt, "stream": False},
        )
        return data.get("response", "")


class GeminiClient(_HTTPModelClient):
    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gemini-2.5-flash",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 120,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(timeout=timeout, session=session)
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise ModelClientError("GEMINI_API_KEY is not configured")

        data = self._post(
            f"{self.base_url}/models/{self.model}:generateContent",
            {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {"temperature": 0.0, "responseMimeType": "application/json"},
            },
            headers={"x-goog-api-key": self.api_key},
        )

        candidates = data.get("candidates") or []
        if not candidates:
            raise ModelResponseError("Gemini returned no candidates")
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


def build_model_client(settings) -> ModelClient:
    provider = (settings.llm_provider or "").strip().lower()

    if provider == "ollama":
        logger.info("Using Ollama model=%s at %s", settings.ollama_model, settings.ollama_base_url)
        return OllamaClient(
            model=settings.ollama_model,
            base_url=settings.ollama_base_url,
            timeout=settings.llm_timeout_seconds,
        )

    if provider == "gemini":
        if not settings.gemini_api_key:
            logger.error("GEMINI_API_KEY is not set; every batch will fall back to neutral/General")
        logger.info("Using Gemini model=%s", settings.gemini_model)
        return GeminiClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.llm_timeout_seconds,
        )

    raise ValueError(f"Unknown LLM_PROVIDER: {settings.llm_provider!r}")
