"""Tests for task file loading and validation."""

import tempfile
from datetime import datetime

import pytest

from tixsnatch.config import load_purchase_task, save_purchase_task
from tixsnatch.errors import ConfigError


def _write_yaml(content: str) -> str:
    """Write YAML to a temp file and return the path."""
    f = tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False, encoding="utf-8")
    f.write(content)
    f.close()
    return f.name


class TestLoadPurchaseTask:
    def test_valid_config(self):
        path = _write_yaml("""
ticket_id: "721234567890"
perform_id: "211234567"
sku_id: "5012345678901"
ticket_name: "Mayday 2026 Tour"
quantity: 2
sale_time: 1760000000000
priority_window_minutes: 20
clock_offset_ms: 50
think_time_ms: 40
retry_count: 8
retry_interval_ms: 200
real_names:
  - 张三
  - 李四
""")
        task = load_purchase_task(path)

        assert task.ticket_id == "721234567890"
        assert task.quantity == 2
        assert task.sale_time == 1760000000000
        assert task.priority_window_minutes == 20
        assert task.clock_offset_ms == 50
        assert task.retry_count == 8
        assert task.real_names == ["张三", "李四"]

    def test_defaults_applied(self):
        path = _write_yaml("""
ticket_id: "1"
perform_id: "2"
sku_id: "3"
sale_time: 1760000000000
""")
        task = load_purchase_task(path)

        assert task.quantity == 1
        assert task.retry_count == 5
        assert task.retry_interval_ms == 100
        assert task.think_time_ms == 30
        assert task.clock_offset_ms == 0
        assert task.priority_window_minutes == 0
        assert task.real_names == []

    def test_iso_sale_time(self):
        path = _write_yaml("""
ticket_id: "1"
perform_id: "2"
sku_id: "3"
sale_time: "2026-05-01T12:00:00+08:00"
""")
        task = load_purchase_task(path)
        expected = datetime.fromisoformat("2026-05-01T12:00:00+08:00")
        assert task.sale_time == int(expected.timestamp() * 1000)

    def test_bad_sale_time(self):
        path = _write_yaml("""
ticket_id: "1"
perform_id: "2"
sku_id: "3"
sale_time: "next tuesday"
""")
        with pytest.raises(ConfigError, match="sale_time"):
            load_purchase_task(path)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("quantity", 5),
            ("retry_count", 0),
            ("retry_count", 11),
            ("retry_interval_ms", 5),
            ("think_time_ms", 9),
            ("clock_offset_ms", -101),
            ("priority_window_minutes", 61),
        ],
    )
    def test_out_of_range(self, field, value):
        path = _write_yaml(f"""
ticket_id: "1"
perform_id: "2"
sku_id: "3"
sale_time: 1760000000000
{field}: {value}
""")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_purchase_task(path)

    def test_missing_file(self):
        with pytest.raises(ConfigError, match="not found"):
            load_purchase_task("/nonexistent/task.yaml")

    def test_invalid_yaml(self):
        path = _write_yaml("ticket_id: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_purchase_task(path)

    def test_not_a_mapping(self):
        path = _write_yaml("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_purchase_task(path)

    def test_save_then_load(self, purchase_task, tmp_path):
        path = save_purchase_task(purchase_task, tmp_path / "task.yaml")
        assert "张三" in path.read_text(encoding="utf-8")
        assert load_purchase_task(path) == purchase_task
