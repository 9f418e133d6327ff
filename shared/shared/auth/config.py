from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_files() -> list[str]:
    """Load .env from backend root so JWT_* vars are always available."""
    base = Path(__file__).resolve().parents[3]  # shared/shared/auth/ → backend root
    return [str(base / ".env"), ".env"]


class AuthSettings(BaseSettings):
    """Verification settings for access tokens minted by the MealFix identity service.

    The analytics service only verifies tokens; it never issues them.
    """

    model_config = SettingsConfigDict(
        env_prefix="JWT_",
        env_file=_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: str = "change-me"
    algorithm: str = "HS256"
    issuer: str = "mealfix-identity"
    audience: str = "mealfix-services"
    # Mobile clocks drift; accept tokens this many seconds past exp / before iat.
    leeway_s: int = 30
