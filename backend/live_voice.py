import asyncio
from typing import Optional

from google import genai

from config import Settings


class LiveVoiceTokenProvider:
    """Short-lived Gemini Live token for the browser's realtime voice connection.

    Optional: any failure or timeout yields None and the interview continues
    without live voice.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def _create_token(self) -> str:
        client = genai.Client(api_key=self.settings.gemini_api_key, http_options={"api_version": "v1alpha"})
        config = {
            "model": f"models/{self.settings.live_model}",
            "config": {
                "response_modalities": ["AUDIO"],
                "speech_config": {
                    "voice_config": {
                        "prebuilt_voice_config": {
                            "voice_name": "Aoede"
                        }
                    }
                },
            },
        }
        token = client.auth_tokens.create(config={"live_connect_constraints": config})
        return token.name

    async def get_token(self) -> Optional[str]:
        if not self.settings.enable_live_voice or not self.settings.gemini_api_key:
            return None
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._create_token),
                timeout=self.settings.live_token_timeout_seconds,
            )
        except asyncio.TimeoutError:
            print(f"[VOICE] Live token request timed out after {self.settings.live_token_timeout_seconds}s")
        except Exception as e:
            print(f"[VOICE] Live token error: {e}")
        return None
