import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        print(f"[CONFIG] Invalid integer for {name}={value!r}, using {default}")
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if value is None:
        return list(default)
    return [item.strip().lower() for item in value.split(",") if item.strip()]


ARBITRATION_POLICIES = {"arbiter_selection", "weighted_average"}
SESSION_BACKENDS = {"memory", "database"}


@dataclass(frozen=True)
class ModelConfig:
    provider: str
    model: str
    temperature: float = 0.3
    max_tokens: int = 1500


@dataclass(frozen=True)
class Settings:
    frontend_url: str = "http://localhost:3000"

    primary_provider: str = "gemini"
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.5-flash-lite"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o"

    evaluation_providers: list[str] = field(default_factory=lambda: ["gemini", "openai"])
    arbiter_provider: str = "gemini"
    arbitration_policy: str = "arbiter_selection"
    enable_multi_llm: bool = True

    resume_cache_dir: str = "./uploads/resume-cache"
    resume_cache_max_age_days: int = 30
    session_backend: str = "memory"
    session_ttl_hours: int = 24
    upload_dir: str = "./uploads"
    public_base_url: str = "http://localhost:8000"

    enable_live_voice: bool = False
    live_model: str = "gemini-2.5-flash-native-audio-preview-12-2025"
    live_token_timeout_seconds: int = 10
    cleanup_interval_minutes: int = 60
    max_prompt_chars: int = 50000

    def model_name(self, provider: str) -> str:
        if provider == "openai":
            return self.openai_model
        return self.gemini_model

    def primary_model(self, temperature: float, max_tokens: int) -> ModelConfig:
        return ModelConfig(
            provider=self.primary_provider,
            model=self.model_name(self.primary_provider),
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def provider_model(self, provider: str, temperature: float, max_tokens: int) -> ModelConfig:
        return ModelConfig(
            provider=provider,
            model=self.model_name(provider),
            temperature=temperature,
            max_tokens=max_tokens,
        )

    def configured_evaluation_providers(self) -> list[str]:
        """Evaluation providers that actually have credentials."""
        keys = {"gemini": self.gemini_api_key, "openai": self.openai_api_key}
        return [p for p in self.evaluation_providers if keys.get(p)]


def load_settings() -> Settings:
    primary = os.getenv("PRIMARY_LLM_PROVIDER", "gemini").strip().lower()

    policy = os.getenv("ARBITRATION_POLICY", "arbiter_selection").strip().lower()
    if policy not in ARBITRATION_POLICIES:
        print(f"[CONFIG] Unknown ARBITRATION_POLICY={policy!r}, using arbiter_selection")
        policy = "arbiter_selection"

    session_backend = os.getenv("SESSION_BACKEND", "memory").strip().lower()
    if session_backend not in SESSION_BACKENDS:
        print(f"[CONFIG] Unknown SESSION_BACKEND={session_backend!r}, using memory")
        session_backend = "memory"

    return Settings(
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
        primary_provider=primary,
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        gemini_model=os.getenv("GEMINI_MODEL", os.getenv("SCORING_MODEL", "gemini-2.5-flash-lite")),
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        openai_model=os.getenv("OPENAI_MODEL", "gpt-4o"),
        evaluation_providers=_env_list("EVALUATION_PROVIDERS", ["gemini", "openai"]),
        arbiter_provider=os.getenv("ARBITER_PROVIDER", primary).strip().lower(),
        arbitration_policy=policy,
        enable_multi_llm=_env_flag("ENABLE_MULTI_LLM_EVALUATION", True),
        resume_cache_dir=os.getenv("RESUME_CACHE_DIR", "./uploads/resume-cache"),
        resume_cache_max_age_days=_env_int("RESUME_CACHE_MAX_AGE_DAYS", 30),
        session_backend=session_backend,
        session_ttl_hours=_env_int("SESSION_TTL_HOURS", 24),
        upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"),
        enable_live_voice=_env_flag("ENABLE_LIVE_VOICE", False),
        live_model=os.getenv("LIVE_MODEL", "gemini-2.5-flash-native-audio-preview-12-2025"),
        live_token_timeout_seconds=_env_int("LIVE_TOKEN_TIMEOUT_SECONDS", 10),
        cleanup_interval_minutes=_env_int("CLEANUP_INTERVAL_MINUTES", 60),
        max_prompt_chars=_env_int("MAX_PROMPT_CHARS", 50000),
    )
