from __future__ import annotations

import logging

from bizbook import config
from bizbook.models.common import ActionResult
from bizbook.services.boundary import GENERIC_FAILURE, action
from bizbook.services.settings_service import SettingsService


def test_data_dir_follows_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("BIZBOOK_DATA_DIR", str(tmp_path / "ledger"))
    assert config.data_dir() == tmp_path / "ledger"

    monkeypatch.delenv("BIZBOOK_DATA_DIR")
    assert config.data_dir() == config.DEFAULT_DATA_DIR


def test_configure_logging_reads_level(monkeypatch):
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    root.handlers = []
    try:
        monkeypatch.setenv("BIZBOOK_LOG_LEVEL", "debug")
        config.configure_logging()
        assert root.level == logging.DEBUG
    finally:
        root.handlers, level = saved
        root.setLevel(level)


def test_settings_defaults_and_update(tmp_path):
    svc = SettingsService(tmp_path)
    assert svc.get().invoice_prefix == "FACT"
    assert svc.get().payment_terms_days == 30

    svc.update(invoice_prefix="FV", currency="EUR")

    again = SettingsService(tmp_path).get()
    assert again.invoice_prefix == "FV"
    assert again.currency == "EUR"


def test_unreadable_settings_fall_back_to_defaults(tmp_path):
    (tmp_path / config.SETTINGS_FILENAME).write_text("[broken", encoding="utf-8")
    assert SettingsService(tmp_path).get().invoice_number_format == "PREFIX-YEAR-NUM"


def test_unexpected_errors_become_generic_failures(caplog):
    @action
    def explode() -> ActionResult:
        raise KeyError("internal")

    with caplog.at_level(logging.ERROR):
        res = explode()

    assert not res.success
    assert res.message == GENERIC_FAILURE
    assert "explode failed" in caplog.text
