from __future__ import annotations

from pathlib import Path

import pytest

from grid_ingest.config.loader import ConfigError, IngestConfig, load_config, parse_config
from grid_ingest.services.coercion import FieldType


def test_load_config_success(write_config: Path):
    cfg = load_config(write_config)
    assert cfg.delimiter == ","
    sales = cfg.table("ml_sales")
    assert sales is not None
    assert sales.conflict_key == "num_venta"
    assert sales.columns == ["num_venta", "sku", "total"]
    assert sales.aliases["Total (MXN)"] == "total"
    assert cfg.table("notas").conflict_key is None
    assert cfg.table("missing") is None
    assert cfg.field_types == {"cantidad": FieldType.NUMBER, "activo": FieldType.BOOLEAN}
    assert cfg.database.port == 5432
    assert cfg.database.dsn is None


def test_coercion_policy_merges_config_over_builtins(write_config: Path):
    policy = load_config(write_config).coercion_policy()
    assert policy.type_of("cantidad") is FieldType.NUMBER
    assert policy.type_of("sku") is FieldType.IDENTIFIER
    assert "N/A" in policy.null_sentinels
    assert "si" in policy.truth_tokens


def test_defaults_without_file():
    cfg = IngestConfig()
    assert cfg.tables == {}
    assert cfg.skip_header_lines == 0
    assert cfg.coercion_policy().type_of("total") is FieldType.NUMBER


def test_load_config_missing_file(temp_workdir: Path):
    with pytest.raises(ConfigError, match="config file not found"):
        load_config(temp_workdir / "config" / "not_exists.yml")


def test_load_config_invalid_yaml(write_config: Path):
    write_config.write_text("tables: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="invalid yaml"):
        load_config(write_config)


def test_load_config_root_must_be_mapping(write_config: Path):
    write_config.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(write_config)


def test_empty_file_is_all_defaults(write_config: Path):
    write_config.write_text("", encoding="utf-8")
    assert load_config(write_config) == IngestConfig()


def test_load_config_extra_field(write_config: Path):
    text = write_config.read_text(encoding="utf-8") + "\nextra_field: not_allowed\n"
    write_config.write_text(text, encoding="utf-8")
    with pytest.raises(ConfigError) as e:
        load_config(write_config)
    assert "config validation failed" in str(e.value)


@pytest.mark.parametrize(
    "data",
    [
        {"field_types": {"total": "money"}},
        {"skip_header_lines": -1},
        {"delimiter": ""},
        {"tables": {"t": {"conflict_key": 5}}},
        {"tables": {"t": {"table": "x"}}},
        {"database": {"port": "5432"}},
        {"truth_tokens": []},
    ],
)
def test_invalid_values_rejected(data):
    with pytest.raises(ConfigError, match="config validation failed"):
        parse_config(data)
