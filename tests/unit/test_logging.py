from __future__ import annotations

from inkstrip import logger as package_logger
from inkstrip.logging import configure_logging, get_logger
from inkstrip.settings import Settings


def test_stdlib_logger_is_configured(capsys) -> None:
    configure_logging(settings=Settings(log_json=False, log_level="INFO"), force=True)
    logger = get_logger("tests")
    logger.info("hello")

    captured = capsys.readouterr()
    assert "hello" in captured.err.lower()


def test_extra_payload_is_rendered_as_keys(capsys) -> None:
    configure_logging(settings=Settings(log_json=True, log_level="INFO"), force=True)
    get_logger("tests").info("page rendered", extra={"page_index": 3})

    captured = capsys.readouterr()
    assert '"page_index": 3' in captured.err
    assert '"message": "page rendered"' in captured.err


def test_package_logger_created_on_import() -> None:
    assert callable(getattr(package_logger, "info", None))
