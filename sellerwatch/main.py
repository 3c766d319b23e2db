"""
CLI エントリーポイント。--scan, --status, セラー管理, マッチ一覧, リリースキャッシュ保守を処理。
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

from dotenv import load_dotenv

from sellerwatch.discogs.errors import DiscogsError, SellerError
from sellerwatch.store.models import STATUS_SOLD, SCAN_ERROR
from sellerwatch.util.datetime_utils import ms_to_iso
from sellerwatch.util.log import get_logger, setup_logging

load_dotenv()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Discogs seller inventory monitor")
    parser.add_argument("--scan", action="store_true", help="Scan monitored sellers and update matches")
    parser.add_argument("--force-fresh", action="store_true", help="Ignore inventory caches (use with --scan)")
    parser.add_argument("--status", action="store_true", help="Show last scan status")
    parser.add_argument("--add-seller", type=str, metavar="NAME", help="Start monitoring a seller")
    parser.add_argument("--display-name", type=str, metavar="NAME", help="Display name (use with --add-seller)")
    parser.add_argument("--remove-seller", type=str, metavar="NAME", help="Stop monitoring a seller")
    parser.add_argument("--list-sellers", action="store_true", help="List monitored sellers")
    parser.add_argument("--list-matches", action="store_true", help="List wishlist matches")
    parser.add_argument("--seller", type=str, metavar="NAME", help="Only this seller (use with --list-matches)")
    parser.add_argument("--include-sold", action="store_true", help="Include sold matches (use with --list-matches)")
    parser.add_argument("--refresh-cache", action="store_true", help="Refresh release -> master cache for the wishlist")
    parser.add_argument("--cache-stats", action="store_true", help="Show release cache statistics")
    parser.add_argument("--prune", action="store_true", help="Remove sold matches older than the prune horizon")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


async def _scan(service, force_fresh: bool, logger: logging.Logger) -> int:
    status = await service.start_scan(force_fresh=force_fresh)
    logger.info("スキャン開始: sellers=%d", status.total_sellers)
    final = await service.wait_for_scan()
    print(
        f"status={final.status} sellers={final.sellers_scanned}/{final.total_sellers} "
        f"new_matches={final.new_matches}"
    )
    if final.error:
        print(f"error: {final.error}")
    return 1 if final.status == SCAN_ERROR else 0


def _print_status(service) -> None:
    s = service.get_scan_status()
    print(f"status:        {s.status}")
    print(f"progress:      {s.progress}%")
    print(f"sellers:       {s.sellers_scanned}/{s.total_sellers}")
    print(f"new matches:   {s.new_matches}")
    if s.current_seller:
        page = f" page {s.current_page}/{s.total_pages}" if s.current_page else ""
        print(f"current:       {s.current_seller}{page}")
    print(f"last scan:     {ms_to_iso(s.last_scan_timestamp) or '-'}")
    if s.error:
        print(f"error:         {s.error}")


def _print_sellers(service) -> None:
    sellers = service.get_sellers()
    if not sellers:
        print("No sellers monitored")
        return
    for s in sellers:
        print(
            f"{s.username}\t{s.display_name}\tinventory={s.inventory_size or 0}\tmatches={s.match_count or 0}"
            f"\tlast_scanned={ms_to_iso(s.last_scanned) or '-'}"
        )


def _print_matches(service, seller: Optional[str], include_sold: bool) -> None:
    matches = service.get_matches_by_seller(seller) if seller else service.get_all_matches()
    if not include_sold:
        matches = [m for m in matches if m.status != STATUS_SOLD]
    if not matches:
        print("No matches")
        return
    for m in matches:
        print(
            f"[{m.status}] {m.seller_id}: {m.artist} - {m.title} ({', '.join(m.format)}) "
            f"{m.condition} {m.price:.2f} {m.currency} {m.listing_url}"
        )


async def _run(args: argparse.Namespace, logger: logging.Logger) -> int:
    from sellerwatch.service import SellerMonitoringService

    service = SellerMonitoringService()
    service.initialize()

    if args.add_seller:
        seller = await service.add_seller(args.add_seller, args.display_name)
        print(f"Added {seller.username} (inventory={seller.inventory_size or 0})")
        return 0
    if args.remove_seller:
        if not service.remove_seller(args.remove_seller):
            print(f"Not monitoring {args.remove_seller}")
            return 1
        print(f"Removed {args.remove_seller}")
        return 0
    if args.refresh_cache:
        result = await service.refresh_release_cache()
        print(
            f"masters_processed={result.masters_processed} stale_refreshed={result.stale_refreshed} "
            f"releases_added={result.releases_added}"
        )
        return 0
    if args.scan:
        return await _scan(service, args.force_fresh, logger)
    if args.status:
        _print_status(service)
    if args.list_sellers:
        _print_sellers(service)
    if args.list_matches:
        _print_matches(service, args.seller, args.include_sold)
    if args.cache_stats:
        st = service.get_release_cache_stats()
        print(
            f"releases={st.total_releases} masters={st.total_masters} stale_masters={st.stale_masters} "
            f"last_updated={ms_to_iso(st.last_updated) or '-'}"
        )
    if args.prune:
        print(f"Pruned {service.remove_stale_matches()} stale matches")
    return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    actions = (
        args.scan,
        args.status,
        args.add_seller,
        args.remove_seller,
        args.list_sellers,
        args.list_matches,
        args.refresh_cache,
        args.cache_stats,
        args.prune,
    )
    if not any(actions):
        parser.print_help()
        sys.exit(0)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = get_logger("main")
    try:
        code = asyncio.run(_run(args, logger))
    except SellerError as e:
        logger.error("%s", e)
        code = 1
    except DiscogsError as e:
        logger.exception("Discogs error: %s", e)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
