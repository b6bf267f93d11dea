"""Tests for application configuration."""
import pytest
from pydantic import ValidationError

from core.config import Settings


class TestCorsOriginsParsing:
    """Tests for CORS origins parsing from environment variables."""

    def test_parse_single_origin_string(self) -> None:
        """Single origin string is parsed correctly."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://localhost/test",
            CORS_ORIGINS="http://localhost:5173",
        )
        assert settings.cors_origins == ["http://localhost:5173"]

    def test_parse_multiple_origins_with_whitespace(self) -> None:
        """Comma-separated origins are split and stripped."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://localhost/test",
            CORS_ORIGINS="  http://localhost:5173 , https://example.com,",
        )
        assert settings.cors_origins == [
            "http://localhost:5173",
            "https://example.com",
        ]

    def test_parse_empty_string(self) -> None:
        """Empty string results in empty list."""
        settings = Settings(
            _env_file=None,
            database_url="postgresql://localhost/test",
            CORS_ORIGINS="",
        )
        assert settings.cors_origins == []

    def test_default_cors_origins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Default CORS origins is localhost:5173."""
        monkeypatch.delenv("CORS_ORIGINS", raising=False)
        settings = Settings(_env_file=None, database_url="postgresql://localhost/test")
        assert settings.cors_origins == ["http://localhost:5173"]


class TestEnrichmentTimeouts:
    """Tests for metadata fetch budgets."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("METADATA_FETCH_TIMEOUT", raising=False)
        monkeypatch.delenv("TITLE_FETCH_TIMEOUT", raising=False)
        settings = Settings(_env_file=None, database_url="postgresql://localhost/test")
        assert settings.metadata_fetch_timeout == 10.0
        assert settings.title_fetch_timeout == 5.0

    def test_from_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("METADATA_FETCH_TIMEOUT", "3.5")
        monkeypatch.setenv("TITLE_FETCH_TIMEOUT", "1")
        settings = Settings(_env_file=None, database_url="postgresql://localhost/test")
        assert settings.metadata_fetch_timeout == 3.5
        assert settings.title_fetch_timeout == 1.0

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                database_url="postgresql://localhost/test",
                metadata_fetch_timeout=0,
            )


class TestDevModeSecurity:
    """DEV_MODE bypasses auth, so it is restricted to local databases."""

    @pytest.mark.parametrize(
        "database_url",
        [
            "postgresql+asyncpg://user:pw@localhost:5432/bookmarks",
            "postgresql+asyncpg://user:pw@127.0.0.1/bookmarks",
            "sqlite+aiosqlite:///:memory:",
            "sqlite+aiosqlite:///./bookmarks.db",
        ],
    )
    def test_dev_mode_allowed_locally(self, database_url: str) -> None:
        settings = Settings(_env_file=None, database_url=database_url, dev_mode=True)
        assert settings.dev_mode is True

    def test_dev_mode_rejected_for_remote_database(self) -> None:
        with pytest.raises(ValidationError, match="DEV_MODE cannot be enabled"):
            Settings(
                _env_file=None,
                database_url="postgresql+asyncpg://user:pw@db.prod.example.com/bookmarks",
                dev_mode=True,
            )

    def test_remote_database_without_dev_mode(self) -> None:
        settings = Settings(
            _env_file=None,
            database_url="postgresql+asyncpg://user:pw@db.prod.example.com/bookmarks",
            dev_mode=False,
        )
        assert settings.dev_mode is False
