import os
from pathlib import Path

from pydantic import ConfigDict, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    SECRET: str
    DATABASE_URL: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    MESSAGES_PAGE_SIZE: int = 30
    INBOX_PAGE_SIZE: int = 20
    MAX_PAGE_SIZE: int = 100
    LOG_LEVEL: str = "INFO"
    RUN_MIGRATIONS_ON_STARTUP: bool = True

    model_config = ConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def get_required_fields(cls) -> list[str]:
        """Get all required fields (those without default values)."""
        return [name for name, field in cls.model_fields.items() if field.is_required()]

    def __init__(self, **kwargs):
        try:
            # pydantic_settings reads the environment first, then the .env file
            super().__init__(**kwargs)
        except ValidationError as e:
            env_file = Path(".env")
            missing_fields = [
                field for field in self.get_required_fields() if not os.getenv(field)
            ]

            if missing_fields:
                fields_str = "\n".join(f"- {field}" for field in missing_fields)
                example_env = "\n".join(
                    f"{field}=your_{field.lower()}_here" for field in missing_fields
                )

                if not env_file.exists():
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables:\n{fields_str}"
                        f"\n\nFor local development, create a .env file with:"
                        f"\n{example_env}"
                    )
                else:
                    error_msg = (
                        f"\n\nError: Missing required environment variables!"
                        f"\nMissing variables:\n{fields_str}"
                        f"\n\nPlease add these to your .env file or set as environment variables."
                    )

                raise ValueError(error_msg) from e
            else:
                # Re-raise the original validation error if it's not about missing fields
                raise


settings = Settings()
