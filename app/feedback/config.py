import os
from dataclasses import dataclass


REVIEW_REPLACE_POLICIES = ("discard_reply", "preserve_reply", "reject")
USER_DELETE_POLICIES = ("retain", "cascade")


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str

    jwt_secret: str
    jwt_algorithm: str
    token_ttl_hours: int

    review_replace_policy: str
    user_delete_policy: str
    client_origin: str
    search_timeout_seconds: float


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _choice(name: str, allowed: tuple[str, ...], default: str) -> str:
    value = _getenv(name, default).lower()
    if value not in allowed:
        raise RuntimeError(f"{name} must be one of: {', '.join(allowed)} (got {value!r})")
    return value


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///feedback.db"),
        jwt_secret=_getenv("JWT_SECRET", secret_key),
        jwt_algorithm=_getenv("JWT_ALGORITHM", "HS256"),
        token_ttl_hours=int(_getenv("TOKEN_TTL_HOURS", "24")),
        review_replace_policy=_choice("REVIEW_REPLACE_POLICY", REVIEW_REPLACE_POLICIES, "discard_reply"),
        user_delete_policy=_choice("USER_DELETE_POLICY", USER_DELETE_POLICIES, "retain"),
        client_origin=_getenv("CLIENT_ORIGIN", "http://localhost:3000"),
        search_timeout_seconds=float(_getenv("SEARCH_TIMEOUT_SECONDS", "0.5")),
    )


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JWT_SECRET": s.jwt_secret,
        "JWT_ALGORITHM": s.jwt_algorithm,
        "TOKEN_TTL_HOURS": s.token_ttl_hours,
        "REVIEW_REPLACE_POLICY": s.review_replace_policy,
        "USER_DELETE_POLICY": s.user_delete_policy,
        "CLIENT_ORIGIN": s.client_origin,
        "SEARCH_TIMEOUT_SECONDS": s.search_timeout_seconds,
        # JSON bodies only; reviews and replies are short
        "MAX_CONTENT_LENGTH": 1 * 1024 * 1024,
    }
