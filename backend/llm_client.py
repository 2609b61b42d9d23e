import asyncio
import time

from google import genai
from google.genai import types
from openai import OpenAI

from config import ModelConfig, Settings
from errors import ProviderError

SUPPORTED_PROVIDERS = ("gemini", "openai")


def system_user_messages(system_prompt: str, user_prompt: str) -> list[dict]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


class LLMClient:
    """Sends chat-style prompts to one configured provider and returns raw text.

    No retries happen here; callers that own fallback data decide what a
    failed call means.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._gemini: genai.Client | None = None
        self._openai: OpenAI | None = None

    def _gemini_client(self) -> genai.Client:
        if not self.settings.gemini_api_key:
            raise ProviderError("gemini", "GEMINI_API_KEY not configured")
        if self._gemini is None:
            self._gemini = genai.Client(api_key=self.settings.gemini_api_key)
        return self._gemini

    def _openai_client(self) -> OpenAI:
        if not self.settings.openai_api_key:
            raise ProviderError("openai", "OPENAI_API_KEY not configured")
        if self._openai is None:
            self._openai = OpenAI(api_key=self.settings.openai_api_key)
        return self._openai

    async def call(self, messages: list[dict], model_config: ModelConfig) -> str:
        provider = model_config.provider
        if provider not in SUPPORTED_PROVIDERS:
            raise ProviderError(provider, "unsupported provider")

        started = time.monotonic()
        try:
            if provider == "gemini":
                text = await self._call_gemini(messages, model_config)
            else:
                text = await self._call_openai(messages, model_config)
        except ProviderError:
            raise
        except Exception as e:
            print(f"[LLM] {provider}/{model_config.model} call failed: {e}")
            raise ProviderError(provider, str(e)) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        if not text or not text.strip():
            raise ProviderError(provider, "empty response")
        print(f"[LLM] {provider}/{model_config.model} responded in {elapsed_ms}ms")
        return text.strip()

    async def _call_gemini(self, messages: list[dict], model_config: ModelConfig) -> str:
        client = self._gemini_client()
        system_parts = [m["content"] for m in messages if m.get("role") == "system"]
        contents = [
            types.Content(
                role="model" if m.get("role") == "assistant" else "user",
                parts=[types.Part.from_text(text=m["content"])],
            )
            for m in messages
            if m.get("role") != "system"
        ]
        config = types.GenerateContentConfig(
            system_instruction="\n\n".join(system_parts) if system_parts else None,
            temperature=model_config.temperature,
            max_output_tokens=model_config.max_tokens,
        )
        response = await asyncio.to_thread(
            client.models.generate_content,
            model=model_config.model,
            contents=contents,
            config=config,
        )
        return response.text or ""

    async def _call_openai(self, messages: list[dict], model_config: ModelConfig) -> str:
        client = self._openai_client()
        response = await asyncio.to_thread(
            client.chat.completions.create,
            model=model_config.model,
            messages=messages,
            temperature=model_config.temperature,
            max_tokens=model_config.max_tokens,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
