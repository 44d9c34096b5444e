"""Tests for logging utilities."""

from pathlib import Path

import orjson
import pytest

from pioassist.core import CoreState, get_core_state, set_core_state
from pioassist.utils import create_logger, get_default_log_file


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("PIOASSIST_DEBUG", raising=False)
    monkeypatch.delenv("PIOASSIST_LOG_LEVEL", raising=False)


def read_entries(path: Path) -> list[dict[str, object]]:
    return [orjson.loads(line) for line in path.read_text().splitlines() if line]


class TestCreateLogger:
    def test_json_output(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "pioassist.log"
        logger = create_logger(log_file=str(log_file), component="home")

        logger.info("home_server_started", port=8010)

        entries = read_entries(log_file)
        assert len(entries) == 1
        entry = entries[0]
        assert entry["event"] == "home_server_started"
        assert entry["port"] == 8010
        assert entry["component"] == "home"
        assert entry["level"] == "info"
        assert "timestamp" in entry

    def test_text_output(self, tmp_path: Path) -> None:
        log_file = tmp_path / "pioassist.log"
        logger = create_logger(log_file=str(log_file), log_format="text")

        logger.warning("flood_detected", attempts=31)

        content = log_file.read_text()
        assert "flood_detected" in content
        assert "attempts=31" in content
        assert "warning" in content

    def test_level_filters_entries(self, tmp_path: Path) -> None:
        log_file = tmp_path / "pioassist.log"
        logger = create_logger(level="warning", log_file=str(log_file))

        logger.info("hidden")
        logger.error("shown")

        assert [e["event"] for e in read_entries(log_file)] == ["shown"]

    def test_debug_env_overrides_level(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PIOASSIST_DEBUG", "1")
        log_file = tmp_path / "pioassist.log"
        logger = create_logger(level="error", log_file=str(log_file))

        logger.debug("details")

        assert [e["event"] for e in read_entries(log_file)] == ["details"]

    def test_log_level_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PIOASSIST_LOG_LEVEL", "error")
        log_file = tmp_path / "pioassist.log"
        logger = create_logger(log_file=str(log_file))

        logger.warning("hidden")

        assert read_entries(log_file) == []

    def test_rotation(self, tmp_path: Path) -> None:
        log_file = tmp_path / "pioassist.log"
        logger = create_logger(log_file=str(log_file), max_bytes=200, backup_count=2)

        for i in range(20):
            logger.info("relay_message", index=i, padding="x" * 40)

        assert log_file.exists()
        assert (tmp_path / "pioassist.log.1").exists()
        assert not (tmp_path / "pioassist.log.3").exists()

    def test_default_log_file_under_core_dir(self, tmp_path: Path) -> None:
        previous = get_core_state()
        set_core_state(CoreState(core_dir=tmp_path))
        try:
            assert get_default_log_file() == tmp_path / "logs" / "pioassist.log"

            create_logger().info("started")

            assert read_entries(tmp_path / "logs" / "pioassist.log")[0]["event"] == "started"
        finally:
            set_core_state(previous)
