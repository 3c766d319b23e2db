"""設定の読み込み・保存。CLI / サービスで共有。"""
from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

load_dotenv()

ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)


def default_config() -> dict[str, Any]:
    """デフォルト設定を返す。"""
    return {
        "discogs": {
            "base_url": "https://api.discogs.com",
            "user_agent": "SellerWatch/1.0",
            "timeout_sec": 10,
        },
        # トークンバケット: 5 回までバースト、その後 1 回/秒
        "rate_limit": {"capacity": 5, "refill_per_sec": 1.0},
        "retry": {
            "discogs": {"max_attempts": 3, "initial_delay_sec": 5, "max_delay_sec": 60},
            "art": {"max_attempts": 3, "initial_delay_sec": 2, "max_delay_sec": 30},
        },
        "monitor": {
            "scan_frequency_days": 7,
            "quick_check_frequency_hours": 24,
            "vinyl_formats_only": True,
            "notify_on_new_match": True,
            "inventory_cache_hours": 6,  # 24h だと在庫が古くなりすぎたため 6h
            "stale_match_prune_days": 30,
            "master_release_refresh_days": 30,
            "max_verify_per_scan": 5,
            "partial_progress_max_age_hours": 24,
        },
        "storage": {"data_dir": str(ROOT / "data")},
    }


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """
    config.yaml を読み込み、デフォルトに上書きマージして返す。
    存在しなければデフォルト。読み込みエラー時もデフォルトを返す。
    SELLERWATCH_DATA_DIR があれば storage.data_dir を上書き。
    """
    path = config_path or os.getenv("CONFIG_PATH") or str(ROOT / "config.yaml")
    config = default_config()
    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                config = _deep_merge(config, loaded)
            else:
                logger.warning("config.yaml の形式が不正です（dict ではない）: %s", path)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("config.yaml の読み込みに失敗。デフォルトを使用: %s", e)
    data_dir = os.getenv("SELLERWATCH_DATA_DIR")
    if data_dir:
        config["storage"]["data_dir"] = data_dir
    return config


def save_config(config: dict[str, Any], config_path: Optional[str] = None) -> None:
    """config.yaml に保存する。"""
    path = config_path or str(ROOT / "config.yaml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, allow_unicode=True, default_flow_style=False)
