"""Tests for the codepair log file setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from codepair.runtime import create_orchestrator
from codepair.services.settings import Settings, redact_secret
from codepair.utils import logging as logging_utils


@pytest.fixture
def restore_package_logging():
    package_logger = logging.getLogger("codepair")
    handlers, level = list(package_logger.handlers), package_logger.level
    yield
    for handler in package_logger.handlers:
        if handler not in handlers:
            handler.close()
    package_logger.handlers[:] = handlers
    package_logger.setLevel(level)
    logging_utils._LOG_PATH = None


def _installed(logger: logging.Logger) -> list[logging.Handler]:
    return [handler for handler in logger.handlers if handler.get_name() == "codepair-log"]


def test_debug_setting_writes_debug_records(tmp_path: Path, restore_package_logging) -> None:
    log_path = logging_utils.configure_logging(Settings(debug_logging=True), log_dir=tmp_path)

    logging.getLogger("codepair.test").debug("state moved to MODEL_CALL")

    assert log_path == tmp_path / "codepair.log"
    assert logging_utils.get_log_path() == log_path
    assert "| DEBUG    | codepair.test | state moved to MODEL_CALL" in log_path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_default_level_is_info(tmp_path: Path, restore_package_logging) -> None:
    log_path = logging_utils.configure_logging(Settings(), log_dir=tmp_path)

    logging.getLogger("codepair.test").debug("payload dump")
    logging.getLogger("codepair.test").info("turn completed")

    text = log_path.read_text(encoding="utf-8")
    assert "payload dump" not in text
    assert "turn completed" in text


def test_api_key_is_masked(tmp_path: Path, restore_package_logging) -> None:
    key = "sk-live-0123456789"
    log_path = logging_utils.configure_logging(Settings(api_key=key), log_dir=tmp_path)

    logging.getLogger("codepair.test").warning("request failed with key %s", key)

    text = log_path.read_text(encoding="utf-8")
    assert key not in text
    assert redact_secret(key) in text


def test_reconfiguring_replaces_handlers(tmp_path: Path, restore_package_logging) -> None:
    logging_utils.configure_logging(Settings(), log_dir=tmp_path / "a")
    second = logging_utils.configure_logging(Settings(), log_dir=tmp_path / "b")

    assert len(_installed(logging.getLogger("codepair"))) == 1
    assert logging_utils.get_log_path() == second


def test_log_dir_from_environment(tmp_path: Path, restore_package_logging) -> None:
    settings = Settings.from_env({"CODEPAIR_LOG_DIR": str(tmp_path / "env")})

    log_path = logging_utils.configure_logging(settings)

    assert log_path.parent == tmp_path / "env"


def test_runtime_enables_logging_for_debug_settings(
    tmp_path: Path, workspace: Path, make_gateway, make_reply, restore_package_logging
) -> None:
    settings = Settings(api_key="sk-test-key", debug_logging=True, log_dir=str(tmp_path / "logs"))

    create_orchestrator(settings, workspace=workspace, gateway=make_gateway(make_reply("Hello there, friend.")))

    log_path = logging_utils.get_log_path()
    assert log_path == tmp_path / "logs" / "codepair.log"
    assert "Creating orchestrator for workspace" in log_path.read_text(encoding="utf-8")


def test_runtime_leaves_logging_alone_by_default(
    workspace: Path, settings: Settings, make_gateway, make_reply, restore_package_logging
) -> None:
    create_orchestrator(settings, workspace=workspace, gateway=make_gateway(make_reply("Hello there, friend.")))

    assert logging_utils.get_log_path() is None
    assert _installed(logging.getLogger("codepair")) == []
