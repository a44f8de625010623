"""
Central feature flags. One file controls every external dependency.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local/no-op fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    use_auth: bool = Field(default=True, alias="FF_USE_AUTH")
    # ON  → Bearer JWT verified with JWT_SECRET.
    # OFF → Dev user injected (user_id="dev-user"). No token needed.

    # ── Storage ──────────────────────────────────────────────────────
    use_s3: bool = Field(default=False, alias="FF_USE_S3")
    # ON  → Uploads go to AWS S3. Needs AWS creds + S3_BUCKET_NAME.
    # OFF → Uploads saved under LOCAL_STORAGE_PATH/{user_id}/.

    # ── Cache / Realtime ─────────────────────────────────────────────
    use_redis: bool = Field(default=True, alias="FF_USE_REDIS")
    # ON  → Redis pub/sub events + fixed-window rate limiting. Needs REDIS_URL.
    # OFF → Events and rate limiting silently skipped.

    # ── LLM ──────────────────────────────────────────────────────────
    use_llm: bool = Field(default=True, alias="FF_USE_LLM")
    # ON  → Chat replies come from the OpenAI-compatible API. Needs OPENAI_API_KEY.
    # OFF → Canned assistant reply. Useful for local development.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
