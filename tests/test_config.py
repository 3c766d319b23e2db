"""config / ScanParams / スキャン種別判定のテスト。"""
from sellerwatch.config import default_config, load_config, save_config
from sellerwatch.job.params import ScanParams
from sellerwatch.job.seller_selector import SCAN_FULL, SCAN_QUICK, decide_scan_mode
from sellerwatch.store.models import MonitoredSeller, SellerMonitoringSettings
from sellerwatch.util.datetime_utils import DAY_MS, HOUR_MS


def test_load_config_missing_file_returns_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("SELLERWATCH_DATA_DIR", raising=False)
    config = load_config(str(tmp_path / "none.yaml"))
    assert config == default_config()


def test_load_config_merges_nested_keys(tmp_path, monkeypatch):
    monkeypatch.setenv("SELLERWATCH_DATA_DIR", str(tmp_path / "data"))
    path = tmp_path / "config.yaml"
    path.write_text("monitor:\n  max_verify_per_scan: 10\nrate_limit:\n  capacity: 2\n", encoding="utf-8")
    config = load_config(str(path))
    assert config["monitor"]["max_verify_per_scan"] == 10
    assert config["monitor"]["inventory_cache_hours"] == 6
    assert config["rate_limit"] == {"capacity": 2, "refill_per_sec": 1.0}
    assert config["storage"]["data_dir"] == str(tmp_path / "data")


def test_load_config_invalid_yaml_falls_back(tmp_path, monkeypatch):
    monkeypatch.delenv("SELLERWATCH_DATA_DIR", raising=False)
    path = tmp_path / "config.yaml"
    path.write_text("monitor: [unclosed\n", encoding="utf-8")
    assert load_config(str(path)) == default_config()


def test_save_config_roundtrip(tmp_path, monkeypatch):
    monkeypatch.delenv("SELLERWATCH_DATA_DIR", raising=False)
    path = str(tmp_path / "config.yaml")
    config = default_config()
    config["discogs"]["user_agent"] = "レコード棚/2.0"
    save_config(config, path)
    assert load_config(path)["discogs"]["user_agent"] == "レコード棚/2.0"


def test_scan_params_clamps_negative_budget():
    config = default_config()
    config["monitor"]["max_verify_per_scan"] = -3
    params = ScanParams.from_settings(SellerMonitoringSettings(scan_frequency_days=2), config)
    assert params.max_verify_per_scan == 0
    assert params.scan_frequency_days == 2.0
    assert params.inventory_cache_hours == 6.0


def _params():
    return ScanParams.from_settings(SellerMonitoringSettings(), default_config())


def test_decide_scan_mode():
    now = 100 * DAY_MS
    params = _params()
    never = MonitoredSeller("a", "a", added_at=1)
    assert decide_scan_mode(never, params, False, now) == SCAN_FULL

    recent = MonitoredSeller("b", "b", added_at=1, last_scanned=now - DAY_MS, last_quick_check=now - HOUR_MS)
    assert decide_scan_mode(recent, params, False, now) is None
    assert decide_scan_mode(recent, params, True, now) == SCAN_FULL

    quick_due = MonitoredSeller("c", "c", added_at=1, last_scanned=now - DAY_MS, last_quick_check=now - 25 * HOUR_MS)
    assert decide_scan_mode(quick_due, params, False, now) == SCAN_QUICK

    full_due = MonitoredSeller("d", "d", added_at=1, last_scanned=now - 7 * DAY_MS, last_quick_check=now)
    assert decide_scan_mode(full_due, params, False, now) == SCAN_FULL
