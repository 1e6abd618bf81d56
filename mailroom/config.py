"""Mailroom configuration."""
from functools import lru_cache
import importlib

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Mailroom settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./data/mailroom.db"
    debug: bool = False

    # Messageable accessors
    name_method: str = "messageable_name"
    email_method: str = "messageable_email"

    # Email
    uses_emails: bool = True
    notification_mailer: str | None = None  # Dotted path, e.g. "myapp.mail.NoticeMailer"
    message_mailer: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@mailroom.local"

    # Search
    search_provider: str = "mailroom.services.search.SqlSearchProvider"

    class Config:
        env_prefix = "MAILROOM_"
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator("name_method", "email_method")
    @classmethod
    def validate_method_name(cls, value: str) -> str:
        """Accessor settings must name a plain attribute."""
        if not value.isidentifier():
            raise ValueError(f"{value!r} is not a valid method name.")
        return value

    @field_validator("smtp_port")
    @classmethod
    def validate_smtp_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError("SMTP port must be between 1 and 65535.")
        return value


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def import_string(dotted_path: str):
    """Import the attribute named by a ``"package.module.Attribute"`` setting."""
    module_path, _, attribute = dotted_path.rpartition(".")
    if not module_path:
        raise ImportError(f"{dotted_path!r} is not a dotted path")
    module = importlib.import_module(module_path)
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise ImportError(f"Module {module_path!r} has no attribute {attribute!r}") from exc
