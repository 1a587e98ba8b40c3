"""Analysis collaborators: prompt rendering, model selection and the LLM client."""

from __future__ import annotations

import logging
from importlib.resources import files
from typing import Any, List, Protocol, Sequence

import httpx

from driftlint.config import ConfigSource
from driftlint.errors import AnalysisError, ModelUnavailableError, PromptTemplateError

LOGGER = logging.getLogger(__name__)

CODE_PLACEHOLDER = "{CODE_PLACEHOLDER}"
FILE_NAME_PLACEHOLDER = "{FILE_NAME_PLACEHOLDER}"


class Analyzer(Protocol):
    """Anything that can review a document and return the raw reply text."""

    async def analyze(self, document_text: str, file_base_name: str) -> str: ...


def load_prompt_template() -> str:
    try:
        template = files("driftlint.analysis").joinpath("templates", "prompt-template.md")
        return template.read_text(encoding="utf-8")
    except (OSError, ModuleNotFoundError) as exc:
        LOGGER.error("Error reading prompt template: %s", exc)
        raise PromptTemplateError("Failed to read prompt template file") from exc


def render_prompt(template: str, code: str, file_name: str) -> str:
    """Fill the template. The code slot is filled once, the file name everywhere."""
    # File name first so placeholder-like text inside the code is left alone.
    prompt = template.replace(FILE_NAME_PLACEHOLDER, file_name)
    return prompt.replace(CODE_PLACEHOLDER, code, 1)


def select_model(available: Sequence[str], configured: str | None) -> str:
    """Pick the configured model when offered, else the first available one."""
    if not available:
        LOGGER.error("No LLM models available. Skipping analysis.")
        raise ModelUnavailableError("No LLM models available")

    configured = (configured or "").strip()
    if configured:
        if configured in available:
            LOGGER.info("Using configured LLM model ID: '%s'.", configured)
            return configured
        LOGGER.warning(
            "Configured LLM model ID '%s' not found. Using the first available model: '%s'.",
            configured,
            available[0],
        )
        return available[0]

    LOGGER.warning(
        "No LLM model ID configured. Using the first available model: '%s'.", available[0]
    )
    LOGGER.info("All available models: %s", ", ".join(available))
    return available[0]


class LLMAnalyzer:
    """Client for an OpenAI-compatible chat completions endpoint.

    Settings (endpoint, key, model, timeout) are read from the config source
    on every call. Transport and protocol failures surface as
    :class:`AnalysisError` so the caller aborts the cycle.
    """

    def __init__(
        self,
        config_source: ConfigSource,
        *,
        client: httpx.AsyncClient | None = None,
        template: str | None = None,
    ) -> None:
        self.config_source = config_source
        self._client = client
        self._owns_client = client is None
        self._template = template

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        api_key = self.config_source.current().resolve_api_key()
        return {"Authorization": f"Bearer {api_key}"} if api_key else {}

    async def list_models(self) -> List[str]:
        config = self.config_source.current()
        url = f"{config.api_base.rstrip('/')}/models"
        payload = await self._request("GET", url, timeout=config.request_timeout)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise AnalysisError(f"Unexpected model list from {url}")
        return [
            item["id"]
            for item in data
            if isinstance(item, dict) and isinstance(item.get("id"), str)
        ]

    async def analyze(self, document_text: str, file_base_name: str) -> str:
        config = self.config_source.current()
        model = select_model(await self.list_models(), config.model)

        template = self._template if self._template is not None else load_prompt_template()
        prompt = render_prompt(template, document_text, file_base_name)

        url = f"{config.api_base.rstrip('/')}/chat/completions"
        payload = await self._request(
            "POST",
            url,
            timeout=config.request_timeout,
            json={
                "model": model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": 0,
                "stream": False,
            },
        )
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise AnalysisError(f"Malformed completion payload from {url}") from exc
        if not isinstance(content, str):
            raise AnalysisError(f"Completion content from {url} is not text")

        LOGGER.info("LLM response received for file: %s", file_base_name)
        LOGGER.debug("Raw response: %s", content)
        return content

    async def _request(self, method: str, url: str, *, timeout: float, **kwargs: Any) -> Any:
        try:
            response = await self._get_client().request(
                method, url, headers=self._headers(), timeout=timeout, **kwargs
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise AnalysisError(
                f"{method} {url} failed with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise AnalysisError(f"{method} {url} failed: {exc}") from exc
        except ValueError as exc:
            raise AnalysisError(f"{method} {url} returned invalid JSON") from exc
