"""Tests for settings loading and validation."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from voicevault.config import Settings
from voicevault.config.settings import PlaybackSettings


def load(**kwargs: object) -> Settings:
    return Settings(_env_file=None, **kwargs)  # type: ignore[arg-type]


class TestEnvironment:
    """VOICEVAULT_ prefix with __ for nested sections."""

    def test_nested_env_override(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        monkeypatch.setenv("VOICEVAULT_LIBRARY__ROOT_PATH", str(tmp_path))
        monkeypatch.setenv("VOICEVAULT_API__PORT", "9000")
        monkeypatch.setenv("VOICEVAULT_PLAYBACK__SLEEP_TIMER_PRESETS", "[30, 15]")

        settings = load()

        assert settings.library.root_path == tmp_path
        assert settings.api.port == 9000
        assert settings.playback.sleep_timer_presets == [15, 30]

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("VOICEVAULT_LIBRARY__ROOT_PATH", raising=False)

        settings = load()

        assert settings.library.root_path is None
        assert settings.playback.default_volume == 1.0
        assert ".m4a" in settings.playback.fallback_extensions

    def test_invalid_port_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VOICEVAULT_API__PORT", "0")
        with pytest.raises(ValidationError):
            load()


class TestPlaybackSettings:
    def test_extensions_are_normalized(self) -> None:
        settings = PlaybackSettings(fallback_extensions=["M4A", " .AAC ", "", "wv"])
        assert settings.fallback_extensions == [".m4a", ".aac", ".wv"]

    @pytest.mark.parametrize("presets", [[], [15, 0], [-5]])
    def test_bad_presets_rejected(self, presets: list[int]) -> None:
        with pytest.raises(ValidationError):
            PlaybackSettings(sleep_timer_presets=presets)

    def test_volume_range(self) -> None:
        with pytest.raises(ValidationError):
            PlaybackSettings(default_volume=1.5)
