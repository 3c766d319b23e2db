"""
スキャン実行のオーケストレーション。
start_scan はステータスを scanning にしてから戻り、本体はバックグラウンドタスクで実行する。
プロセス内で同時に走るスキャンは 1 つだけ。
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Optional

from sellerwatch.discogs.retry import RetryExecutor
from sellerwatch.job.params import ScanParams
from sellerwatch.job.processor import SellerProcessor, carry_concurrent_changes
from sellerwatch.job.seller_selector import decide_scan_mode
from sellerwatch.match.matcher import MatchingEngine
from sellerwatch.store import repo
from sellerwatch.store.file_storage import FileStorage
from sellerwatch.store.models import (
    SCAN_COMPLETED,
    SCAN_ERROR,
    SCAN_SCANNING,
    MonitoredSeller,
    SellerScanStatus,
)
from sellerwatch.util.datetime_utils import now_ms
from sellerwatch.util.datetime_utils import run_id as make_run_id
from sellerwatch.util.log import log_scan_summary

logger = logging.getLogger(__name__)


class ScanOrchestrator:
    def __init__(
        self,
        storage: FileStorage,
        client: Any,
        engine: MatchingEngine,
        wishlist: Any,
        config: Optional[dict[str, Any]] = None,
        retry: Optional[RetryExecutor] = None,
    ) -> None:
        self.storage = storage
        self.client = client
        self.engine = engine
        self.wishlist = wishlist
        self.config = config or {}
        self.retry = retry or RetryExecutor()
        self.scan_in_progress = False
        self._task: Optional[asyncio.Task] = None

    def _update_status(self, **changes: Any) -> SellerScanStatus:
        return repo.update_scan_status(self.storage, **changes)

    async def start_scan(self, force_fresh: bool = False) -> SellerScanStatus:
        """
        scanning を書き込んでから本体をバックグラウンドで開始し、その状態を返す。
        実行中に呼ばれた場合は現在の状態をそのまま返す。
        """
        if self.scan_in_progress:
            logger.warning("Scan already in progress")
            return repo.get_scan_status(self.storage)

        self.scan_in_progress = True
        try:
            sellers = repo.get_sellers(self.storage)
            previous = repo.get_scan_status(self.storage)
            initial = repo.set_scan_status(
                self.storage,
                SellerScanStatus(
                    status=SCAN_SCANNING,
                    progress=0,
                    sellers_scanned=0,
                    total_sellers=len(sellers),
                    new_matches=0,
                    last_scan_timestamp=previous.last_scan_timestamp,
                ),
            )
        except Exception:
            self.scan_in_progress = False
            raise

        self._task = asyncio.create_task(self._run_in_background(sellers, force_fresh))
        return initial

    async def wait(self) -> None:
        """実行中のバックグラウンドスキャンの終了を待つ。"""
        if self._task is not None:
            await self._task

    async def _run_in_background(self, sellers: list[MonitoredSeller], force_fresh: bool) -> None:
        try:
            await self.run_scan(sellers, force_fresh)
        except Exception as e:
            logger.exception("Background scan failed: %s", e)
            self._update_status(status=SCAN_ERROR, error=str(e) or type(e).__name__, current_seller=None)
        finally:
            self.scan_in_progress = False

    async def run_scan(self, sellers: list[MonitoredSeller], force_fresh: bool = False) -> SellerScanStatus:
        """全セラーを順に処理。1 セラーの失敗では止めず、最後に error として報告する。"""
        run_id = make_run_id()
        total = len(sellers)
        scanned = 0
        total_new = 0
        failed: list[str] = []
        notes = ""

        try:
            if total == 0:
                notes = "no sellers"
                return self._update_status(
                    status=SCAN_COMPLETED,
                    progress=100,
                    sellers_scanned=0,
                    total_sellers=0,
                    new_matches=0,
                    last_scan_timestamp=now_ms(),
                    error=None,
                )

            monitor_cfg = self.config.get("monitor", {})
            settings = repo.get_settings(self.storage, monitor_cfg)
            params = ScanParams.from_settings(settings, self.config)
            wishlist_ids = await self.wishlist.get_wishlist_master_ids()
            logger.info("スキャン開始: sellers=%d, wishlist masters=%d, force_fresh=%s", total, len(wishlist_ids), force_fresh)

            processor = SellerProcessor(
                self.client,
                self.storage,
                self.engine,
                params,
                retry=self.retry,
                update_status=self._update_status,
            )

            for idx, seller in enumerate(sellers):
                mode = decide_scan_mode(seller, params, force_fresh, now_ms())
                if mode is None:
                    logger.debug("Skipping %s - recently scanned", seller.username)
                else:
                    try:
                        existing = repo.get_matches_by_seller(self.storage, seller.username)
                        result = await processor.process_seller(
                            seller, mode, wishlist_ids, existing, force_fresh=force_fresh
                        )
                        # ここから保存まで await を挟まない（セラー単位で差し替え）
                        stored = repo.get_matches_by_seller(self.storage, seller.username)
                        matches = carry_concurrent_changes(result.matches, existing, stored)
                        updated_seller = dataclasses.replace(
                            result.seller, match_count=repo.count_active_matches(matches, seller.username)
                        )
                        if repo.upsert_seller(self.storage, updated_seller):
                            repo.replace_seller_matches(self.storage, seller.username, matches)
                        else:
                            repo.delete_inventory_cache(self.storage, seller.username)
                            repo.clear_partial_progress(self.storage, seller.username)
                        logger.info(
                            "Seller %s done: %d new, %d updated%s",
                            seller.username,
                            result.new_matches,
                            result.updated_matches,
                            "" if result.fetch_complete else ", fetch incomplete (will resume)",
                        )
                        total_new += result.new_matches
                        scanned += 1
                    except Exception as e:
                        logger.exception("Error scanning seller %s: %s", seller.username, e)
                        failed.append(seller.username)

                self._update_status(
                    status=SCAN_SCANNING,
                    sellers_scanned=idx + 1,
                    progress=round((idx + 1) * 100 / total),
                    new_matches=total_new,
                    current_page=None,
                    total_pages=None,
                    matching_progress=None,
                )

            repo.remove_stale_matches(self.storage, params.stale_match_prune_days)

            error: Optional[str] = None
            final_status = SCAN_COMPLETED
            if failed:
                final_status = SCAN_ERROR
                error = f"Scan failed for {len(failed)} seller(s): {', '.join(failed)}"
                notes = error
            status = self._update_status(
                status=final_status,
                progress=100,
                sellers_scanned=total,
                new_matches=total_new,
                current_seller=None,
                current_page=None,
                total_pages=None,
                matching_progress=None,
                last_scan_timestamp=now_ms(),
                error=error,
            )
            logger.info("Scan completed: %d sellers, %d new matches", total, total_new)
            return status
        except Exception as e:
            notes = str(e)
            raise
        finally:
            log_scan_summary(logger, run_id, scanned, total, total_new, len(failed), notes)
