from decimal import Decimal
from pathlib import Path

import pytest

from ledgersight.config import (
    DEFAULT_PNL_SECTIONS,
    CompanySettings,
    company_settings_from_mapping,
    load_app_config,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "ledgersight_config.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_app_config_full_file(tmp_path) -> None:
    """Every section of the TOML file ends up in AppConfig."""
    (tmp_path / "my_ratios.toml").write_text("", encoding="utf-8")
    path = _write(
        tmp_path,
        """
[companies.acme]
name = "Acme"
functional_currency = "eur"
timezone = "Europe/Paris"
fiscal_year_start_month = 4

[companies.acme.ifrs]
enabled = false
disabled_rules = ["bs_classification"]
cash_tolerance = "0.5"

[companies.acme.classification]
non_cash_categories = ["Depreciation*", "Impairment"]

[rates]
base = "EUR"
USD = "0.92"

[periods]
max_custom_days = 400

[ratios]
default_level = "advanced"
rules_file = "my_ratios.toml"

[display]
mode = "both"
ratio_decimals = 3

[logging]
level = "DEBUG"
""",
    )

    cfg = load_app_config(str(path))
    acme = cfg.company()

    assert acme.company_id == "acme"
    assert acme.functional_currency == "EUR"
    assert acme.fiscal_year_start_month == 4
    assert acme.ifrs.enabled is False
    assert acme.ifrs.disabled_rules == frozenset({"BS_CLASSIFICATION"})
    assert acme.ifrs.cash_tolerance == Decimal("0.5")
    assert acme.classification.non_cash_categories == ("Depreciation*", "Impairment")

    assert cfg.rates is not None and cfg.rates.base == "EUR"
    assert cfg.max_custom_days == 400
    assert cfg.default_ratios_level == "advanced"
    assert cfg.ratios_rules_file == (tmp_path / "my_ratios.toml").resolve()
    assert cfg.display_mode == "both"
    assert cfg.ratio_decimals == 3
    assert cfg.log_level == "DEBUG"


def test_load_app_config_defaults(tmp_path) -> None:
    path = _write(tmp_path, "[companies.solo]\n")
    cfg = load_app_config(str(path))

    assert cfg.rates is None
    assert cfg.max_custom_days == 731
    assert cfg.ratios_enabled is True
    assert cfg.display_mode == "table"
    assert cfg.company("solo").timezone == "UTC"


def test_load_app_config_errors(tmp_path) -> None:
    """Missing files, bad TOML and missing companies are reported clearly."""
    with pytest.raises(FileNotFoundError):
        load_app_config(str(tmp_path / "missing.toml"))

    with pytest.raises(ValueError, match="Failed to parse"):
        load_app_config(str(_write(tmp_path, "[companies\n")))

    with pytest.raises(ValueError, match="at least one"):
        load_app_config(str(_write(tmp_path, "[display]\nmode = 'table'\n")))


def test_company_selection_rules(tmp_path) -> None:
    path = _write(tmp_path, "[companies.a]\n[companies.b]\n")
    cfg = load_app_config(str(path))

    assert cfg.company("b").company_id == "b"
    with pytest.raises(ValueError, match="Several companies"):
        cfg.company()
    with pytest.raises(ValueError, match="Unknown company"):
        cfg.company("zzz")


def test_company_settings_from_mapping_validation() -> None:
    """fiscal_year_start_month and pnl_sections keys are validated."""
    settings = company_settings_from_mapping(
        {"company_id": "x", "pnl_sections": {"other_income": ["Grants"]}}
    )
    assert isinstance(settings, CompanySettings)
    assert settings.pnl_sections["other_income"] == ("Grants",)
    assert settings.pnl_sections["revenue"] == DEFAULT_PNL_SECTIONS["revenue"]

    with pytest.raises(ValueError):
        company_settings_from_mapping({})
    with pytest.raises(ValueError):
        company_settings_from_mapping({"company_id": "x", "fiscal_year_start_month": 13})
    with pytest.raises(ValueError):
        company_settings_from_mapping({"company_id": "x", "pnl_sections": {"bogus": []}})
