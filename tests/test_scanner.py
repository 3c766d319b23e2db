"""scanner（在庫取得・途中再開・100 ページ制限の回避）のユニットテスト。"""
import asyncio

import pytest

from sellerwatch.discogs.errors import DiscogsHTTPError, PaginationLimitError
from sellerwatch.job.scanner import InventoryScanner
from sellerwatch.store import repo
from sellerwatch.store.models import PartialScanProgress
from sellerwatch.util.datetime_utils import HOUR_MS, now_ms


def _stock(fake_client, make_item, username, count):
    fake_client.inventories[username.lower()] = [make_item(i) for i in range(1, count + 1)]


def test_full_fetch_all_pages(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "vinylshop", 250)
    scanner = InventoryScanner(fake_client, storage, retry)
    result = asyncio.run(scanner.fetch_inventory("vinylshop"))
    assert result.is_complete is True
    assert result.total_items == 250
    assert [i.listing_id for i in result.items] == list(range(1, 251))
    assert [c[2] for c in fake_client.calls_of("inventory")] == [1, 2, 3]
    assert repo.get_partial_progress(storage, "vinylshop") is None


def test_resume_after_crash_on_page_four(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "vinylshop", 1000)
    scanner = InventoryScanner(fake_client, storage, retry)

    fake_client.page_errors[(4, "desc")] = DiscogsHTTPError(500, "Internal error")
    first = asyncio.run(scanner.fetch_inventory("vinylshop"))
    assert first.is_complete is False
    assert len(first.items) == 300
    progress = repo.get_partial_progress(storage, "vinylshop")
    assert progress is not None
    assert progress.last_completed_page == 3
    assert progress.total_pages == 10

    del fake_client.page_errors[(4, "desc")]
    fake_client.calls.clear()
    second = asyncio.run(scanner.fetch_inventory("vinylshop"))
    pages = [c[2] for c in fake_client.calls_of("inventory")]
    assert pages[0] == 4
    assert pages == list(range(4, 11))
    assert second.is_complete is True

    ids = [i.listing_id for i in second.items]
    assert len(ids) == len(set(ids))
    assert ids == list(range(1, 1001))
    assert repo.get_partial_progress(storage, "vinylshop") is None


def test_stale_partial_progress_is_discarded(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "vinylshop", 150)
    repo.save_partial_progress(
        storage,
        "vinylshop",
        PartialScanProgress(
            items=[make_item(999)],
            last_completed_page=1,
            total_pages=2,
            total_items=150,
            saved_at=now_ms() - 25 * HOUR_MS,
        ),
    )
    scanner = InventoryScanner(fake_client, storage, retry)
    result = asyncio.run(scanner.fetch_inventory("vinylshop"))
    assert [c[2] for c in fake_client.calls_of("inventory")] == [1, 2]
    assert 999 not in {i.listing_id for i in result.items}
    assert len(result.items) == 150


def test_error_on_first_page_propagates(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "vinylshop", 150)
    fake_client.page_errors[(1, "desc")] = DiscogsHTTPError(500, "Internal error")
    scanner = InventoryScanner(fake_client, storage, retry)
    with pytest.raises(DiscogsHTTPError):
        asyncio.run(scanner.fetch_inventory("vinylshop"))


def test_quick_check_fetches_page_one_only_without_progress(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "vinylshop", 350)
    scanner = InventoryScanner(fake_client, storage, retry)
    result = asyncio.run(scanner.fetch_inventory("vinylshop", pages_limit=1))
    assert [c[2] for c in fake_client.calls_of("inventory")] == [1]
    assert len(result.items) == 100
    assert result.total_items == 350
    assert repo.get_partial_progress(storage, "vinylshop") is None


def test_pagination_limit_uses_reverse_sort(storage, fake_client, retry, make_item, sleeps):
    _stock(fake_client, make_item, "bigshop", 250)
    fake_client.page_limit = 2
    scanner = InventoryScanner(fake_client, storage, retry)
    result = asyncio.run(scanner.fetch_inventory("bigshop"))

    assert result.is_complete is True
    ids = [i.listing_id for i in result.items]
    assert len(ids) == len(set(ids)) == 250
    assert set(ids) == set(range(1, 251))
    reverse_calls = [c for c in fake_client.calls_of("inventory") if c[3] == "asc"]
    assert [c[2] for c in reverse_calls] == [1]
    # 100 ページ制限はリトライしない
    assert sleeps == []
    assert repo.get_partial_progress(storage, "bigshop") is None


def test_pagination_limit_on_first_page_propagates(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "bigshop", 50)
    fake_client.page_errors[(1, "desc")] = PaginationLimitError(403, "Pagination above 100 disabled")
    scanner = InventoryScanner(fake_client, storage, retry)
    with pytest.raises(PaginationLimitError):
        asyncio.run(scanner.fetch_inventory("bigshop"))


def test_reverse_fetch_failure_keeps_items_so_far(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "bigshop", 250)
    fake_client.page_limit = 1
    fake_client.page_errors[(2, "asc")] = DiscogsHTTPError(500, "Internal error")
    scanner = InventoryScanner(fake_client, storage, retry)
    result = asyncio.run(scanner.fetch_inventory("bigshop"))
    # desc 1 ページ + asc 1 ページ（2 ページ目で失敗）
    assert result.is_complete is True
    assert len(result.items) == 200


def test_page_callback_reports_progress(storage, fake_client, retry, make_item):
    _stock(fake_client, make_item, "vinylshop", 150)
    seen = []
    scanner = InventoryScanner(fake_client, storage, retry, page_callback=lambda p, t: seen.append((p, t)))
    asyncio.run(scanner.fetch_inventory("vinylshop"))
    assert seen == [(1, 1), (2, 2)]
