"""Shared pytest fixtures."""

import logging
import os
import sys
from collections.abc import Callable, Generator

import pytest
import structlog
from hypothesis import HealthCheck, settings

from apartment_viewer.config import Settings
from apartment_viewer.logging import configure_logging
from apartment_viewer.models import MediaAsset, MediaKind, NormalizedRecord


def pytest_configure(config: pytest.Config) -> None:
    """Force line-buffered stdout when piped."""
    if hasattr(sys.stdout, "reconfigure") and not sys.stdout.isatty():
        sys.stdout.reconfigure(line_buffering=True)
    if hasattr(sys.stderr, "reconfigure") and not sys.stderr.isatty():
        sys.stderr.reconfigure(line_buffering=True)


# Hypothesis settings profiles for different environments
settings.register_profile("fast", max_examples=10)
settings.register_profile(
    "ci",
    max_examples=200,
    suppress_health_check=[HealthCheck.too_slow],
)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "fast"))


@pytest.fixture(autouse=True)
def _isolate_settings_from_dotenv(monkeypatch: pytest.MonkeyPatch) -> None:
    """Prevent the local .env file from leaking into test Settings instances."""
    monkeypatch.setattr(
        Settings,
        "model_config",
        {**Settings.model_config, "env_file": None},
    )


@pytest.fixture
def test_settings() -> Settings:
    return Settings(api_base_url="https://api.example.test/api", request_timeout_seconds=5)


def image(n: int) -> MediaAsset:
    return MediaAsset(url=f"https://cdn.example.test/photo-{n}.jpg", kind=MediaKind.IMAGE)


def video(n: int) -> MediaAsset:
    return MediaAsset(
        url=f"https://cdn.example.test/tour-{n}.mp4", kind=MediaKind.VIDEO, mime_type="video/mp4"
    )


@pytest.fixture
def make_record() -> Callable[..., NormalizedRecord]:
    """Factory for records with ``images`` images and ``videos`` videos."""

    def _make(images: int = 3, videos: int = 0, **kwargs: object) -> NormalizedRecord:
        return NormalizedRecord(
            images=tuple(image(i) for i in range(images)),
            videos=tuple(video(i) for i in range(videos)),
            **kwargs,  # type: ignore[arg-type]
        )

    return _make


@pytest.fixture
def debug_console_logging(capsys: pytest.CaptureFixture[str]) -> Generator[None, None, None]:
    """Console logging at DEBUG into pytest's strict UTF-8 stderr capture."""
    configure_logging(level=logging.DEBUG)
    # Module-level loggers must not keep a handle on this test's capture stream.
    structlog.configure(
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()
