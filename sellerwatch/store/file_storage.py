"""JSON ファイルストレージ。データディレクトリ配下の論理パスで読み書きする。"""
from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

SELLERS_FILE = "sellers/monitored-sellers.json"
MATCHES_FILE = "sellers/matches.json"
SCAN_STATUS_FILE = "sellers/scan-status.json"
SETTINGS_FILE = "sellers/settings.json"
INVENTORY_CACHE_DIR = "sellers/inventory-cache"
RELEASE_CACHE_FILE = "sellers/release-master-cache.json"
WISHLIST_FILE = "wishlist/masters.json"


def _default_data_dir() -> str:
    return os.getenv("SELLERWATCH_DATA_DIR") or str(Path(__file__).resolve().parent.parent.parent / "data")


def cache_key(username: str) -> str:
    """ファイル名に使えるようにユーザー名を正規化。"""
    return re.sub(r"[^a-zA-Z0-9_-]", "_", username).lower()


def inventory_cache_path(username: str) -> str:
    return f"{INVENTORY_CACHE_DIR}/{cache_key(username)}.json"


def partial_progress_path(username: str) -> str:
    return f"{INVENTORY_CACHE_DIR}/{cache_key(username)}-partial.json"


class FileStorage:
    def __init__(self, data_dir: Optional[str] = None) -> None:
        self.data_dir = Path(data_dir or _default_data_dir())
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _full_path(self, path: str) -> Path:
        return self.data_dir / path

    def read_json(self, path: str) -> Optional[Any]:
        """無ければ None。壊れた JSON もコールドスタート扱いで None。"""
        full = self._full_path(path)
        try:
            return json.loads(full.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (ValueError, UnicodeDecodeError) as e:
            logger.warning("Corrupt JSON at %s, treating as empty: %s", path, e)
            return None

    def write_json(self, path: str, data: Any) -> None:
        """一時ファイルに書いてから置き換える（途中クラッシュで壊さない）。"""
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        tmp = full.with_suffix(full.suffix + ".tmp")
        try:
            tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(full)
        except OSError:
            logger.error("Error writing JSON file: %s", path)
            if tmp.exists():
                tmp.unlink()
            raise

    def delete(self, path: str) -> None:
        try:
            self._full_path(path).unlink()
        except FileNotFoundError:
            pass

    def exists(self, path: str) -> bool:
        return self._full_path(path).exists()

    def list_files(self, directory: str) -> list[str]:
        full = self._full_path(directory)
        if not full.is_dir():
            return []
        return sorted(p.name for p in full.iterdir())
