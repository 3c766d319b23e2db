"""簡易ロギング。スキャンサマリを必ず出せるようにする。"""
import logging
import sys
from typing import Any

# ページ取得ごとに接続ログが出るため、-v 以外では WARNING 以上だけにする
NOISY_LOGGERS = ("urllib3", "requests_oauthlib", "oauthlib")


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )
    if level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_scan_summary(
    logger: logging.Logger,
    run_id: str,
    sellers_scanned: int,
    total_sellers: int,
    new_matches: int,
    errors_count: int,
    notes: str = "",
    **extra: Any,
) -> None:
    logger.info(
        "scan_summary run_id=%s sellers_scanned=%s total_sellers=%s new_matches=%s errors=%s notes=%s",
        run_id,
        sellers_scanned,
        total_sellers,
        new_matches,
        errors_count,
        notes or "(none)",
        extra=extra,
    )
