"""Chat-completion backends used by the ``ai`` classifier.

The backend is picked from ``SPENDLENS_LLM_PROVIDER`` (openai, huggingface or
ollama) and ``SPENDLENS_LLM_MODEL``. Every backend answers with plain text;
turning that text into a category is the classifier's job.
"""
import json
import logging
import os
import urllib.request
from dataclasses import dataclass
from typing import List, Optional, Protocol

from huggingface_hub import InferenceClient

from spendlens.exceptions import ClassifierError

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_OLLAMA_URL = "http://localhost:11434/api/chat"

DEFAULT_MODELS = {
    "openai": "gpt-3.5-turbo",
    "huggingface": "Qwen/Qwen3-32B",
    "ollama": "phi3:mini",
}


class LLMProvider(Protocol):
    def generate(self, messages: List[dict]) -> str:
        """Reply text for an OpenAI-style list of chat messages."""


def _post_json(url: str, payload: dict, headers: Optional[dict] = None, timeout: float = 60.0) -> dict:
    request = urllib.request.Request(url, data=json.dumps(payload).encode("utf-8"), method="POST")
    request.add_header("Content-Type", "application/json")
    for key, value in (headers or {}).items():
        request.add_header(key, value)
    logger.debug("POST %s model=%s", url, payload.get("model"))
    with urllib.request.urlopen(request, timeout=timeout) as response:
        body = response.read().decode("utf-8")
    logger.debug("Reply from %s: %s", url, body)
    return json.loads(body)


@dataclass
class OpenAIProvider:
    model: str
    api_key: str
    temperature: float = 0.0
    url: str = DEFAULT_OPENAI_URL

    def generate(self, messages: List[dict]) -> str:
        data = _post_json(
            self.url,
            {"model": self.model, "messages": messages, "temperature": self.temperature},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        return data["choices"][0]["message"]["content"].strip()


@dataclass
class HuggingFaceProvider:
    model: str
    token: Optional[str] = None
    temperature: float = 0.0

    def __post_init__(self) -> None:
        self._client = InferenceClient(provider="cerebras", api_key=self.token)

    def generate(self, messages: List[dict]) -> str:
        completion = self._client.chat_completion(
            messages=messages, model=self.model, temperature=self.temperature
        )
        return completion.choices[0].message.content.strip()


@dataclass
class OllamaProvider:
    model: str
    url: str = DEFAULT_OLLAMA_URL
    temperature: float = 0.0

    def generate(self, messages: List[dict]) -> str:
        data = _post_json(self.url, {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": self.temperature},
        }, timeout=300.0)
        # older servers send the content string directly
        message = data.get("message", "")
        if isinstance(message, dict):
            message = message.get("content", "")
        if not isinstance(message, str):
            raise ClassifierError(f"Ollama returned no message content: {data}")
        return message.strip()


def get_provider_from_env(
    openai_api_key: Optional[str] = None,
    openai_model: Optional[str] = None,
) -> LLMProvider:
    """Provider named by ``SPENDLENS_LLM_PROVIDER``.

    ``openai_api_key`` and ``openai_model`` come from ``Settings`` and win over
    the environment for the OpenAI backend.
    """
    name = os.environ.get("SPENDLENS_LLM_PROVIDER", "openai").lower()
    model = os.environ.get("SPENDLENS_LLM_MODEL")

    if name == "huggingface":
        return HuggingFaceProvider(
            model=model or DEFAULT_MODELS["huggingface"],
            token=os.environ.get("HF_API_TOKEN"),
        )
    if name == "ollama":
        return OllamaProvider(
            model=model or DEFAULT_MODELS["ollama"],
            url=os.environ.get("OLLAMA_URL", DEFAULT_OLLAMA_URL),
        )
    if name != "openai":
        raise ClassifierError(f"Unknown LLM provider '{name}' (expected openai, huggingface or ollama)")

    api_key = openai_api_key or os.environ.get("OPENAI_API_KEY")
    if not api_key:
        raise ClassifierError("AI classification requested but OPENAI_API_KEY is not set")
    return OpenAIProvider(
        model=model or openai_model or os.environ.get("OPENAI_MODEL", DEFAULT_MODELS["openai"]),
        api_key=api_key,
    )


@dataclass
class LLMClient:
    """Thin wrapper so classifiers can be handed a fake provider in tests."""

    provider: Optional[LLMProvider] = None

    def __post_init__(self) -> None:
        if self.provider is None:
            self.provider = get_provider_from_env()

    def chat(self, messages: List[dict]) -> str:
        return self.provider.generate(messages)
