"""Application configuration management."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from filter_move_mail.logging import DEFAULT_LOG_DIR


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="FILTER_MOVE_MAIL_",
        env_file=[
            ".env",  # Project-level defaults (lower priority)
            Path.home() / ".config" / "filter-move-mail" / ".env",  # User config
        ],
        env_file_encoding="utf-8",
    )

    # Paths
    config_dir: Path = Field(
        default=Path.home() / ".config" / "filter-move-mail",
        description="Configuration directory",
    )
    rules_file: str = Field(default="rules.yaml", description="Rules and settings filename")
    address_book_file: str = Field(
        default="address_books.yaml", description="Address books filename"
    )
    maildir_root: Path = Field(
        default=Path.home() / "Mail",
        description="Directory holding one Maildir per account",
    )

    identities: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Own addresses per account id (JSON in the environment)",
    )

    # Processing settings
    page_size: int = Field(
        default=100, ge=1, description="Messages per page when listing a folder"
    )
    poll_interval_seconds: int = Field(
        default=30, ge=1, description="Seconds between new mail checks in watch mode"
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Path = Field(
        default=DEFAULT_LOG_DIR,
        description="Directory for log files (per-account logs written here)",
    )
    log_rotation_size_mb: int = Field(
        default=5, ge=1, description="Max size per log file in MB before rotation"
    )
    log_backup_count: int = Field(
        default=3, ge=0, description="Number of rotated log files to keep"
    )

    @property
    def rules_path(self) -> Path:
        """Full path to rules file."""
        return self.config_dir / self.rules_file

    @property
    def address_book_path(self) -> Path:
        """Full path to address books file."""
        return self.config_dir / self.address_book_file

    def ensure_config_dir(self) -> None:
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
