import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "./firebase.json")

    CORS_ORIGINS = _env_list("CORS_ORIGINS", "http://localhost:3000")

    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
    SESSION_EXPIRES_DAYS = int(os.getenv("SESSION_EXPIRES_DAYS", "5"))
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org/search")
    NOMINATIM_USER_AGENT = os.getenv("NOMINATIM_USER_AGENT", "HomeVietCommunity/1.0")

    # Content limits
    POST_TITLE_MAX = int(os.getenv("POST_TITLE_MAX", "100"))
    POST_BODY_MAX = int(os.getenv("POST_BODY_MAX", "2000"))
    POST_IMAGES_MAX = int(os.getenv("POST_IMAGES_MAX", "5"))
    IMAGE_URL_MAX = 500
    COMMENT_BODY_MAX = int(os.getenv("COMMENT_BODY_MAX", "1000"))

    POSTS_PAGE_MAX = 100
    NEARBY_DEFAULT_RADIUS_METERS = 5000
    NEARBY_PAGE_MAX = 50


settings = Settings()
