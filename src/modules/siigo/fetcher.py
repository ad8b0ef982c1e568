"""
Paginated retrieval of Siigo purchases.

Two modes are supported:
- sequential: page after page until Siigo signals the end of the data or the
  safety cap is reached
- fan-out: page 1 first, then the remaining pages (bounded) concurrently

Every page is retried with exponential backoff plus jitter. A page that keeps
failing is skipped and recorded in ``FetchResult.failed_pages`` so callers can
tell "no more data" apart from "data missing".
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
import random
from dataclasses import replace
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from loguru import logger

from .cache import TTLCache
from .client import SiigoAPIError, SiigoAuthError, SiigoClient, SiigoConnectionError
from .config import Settings
from .models import DateRange, FetchResult, RawInvoiceRecord
from .normalizer import extract_date, record_identity

RESULT_KEYS = ("results", "data", "invoices", "items", "purchases", "documents", "rows")
BACKOFF_BASE_SECONDS = 0.4
MAX_BACKOFF_SECONDS = 60.0
MAX_CONSECUTIVE_FAILED_PAGES = 2


# ---------- Response shape helpers ----------


def extract_page(body: Any) -> Tuple[List[RawInvoiceRecord], Dict[str, Any]]:
    """
    Pull the records array and pagination metadata out of a page body.

    Accepts a bare list or an object holding the array under one of
    ``RESULT_KEYS``; metadata comes from ``pagination``, ``meta`` or the body.
    """
    if isinstance(body, list):
        return [r for r in body if isinstance(r, dict)], {}
    if not isinstance(body, dict):
        return [], {}

    records: List[Any] = []
    for key in RESULT_KEYS:
        value = body.get(key)
        if isinstance(value, list):
            records = value
            break

    info = body.get("pagination") or body.get("meta") or body
    if not isinstance(info, dict):
        info = {}
    return [r for r in records if isinstance(r, dict)], info


def total_pages_from(info: Dict[str, Any], page_size: int) -> Optional[int]:
    """Total page count declared by the pagination metadata, if any."""
    for key in ("total_pages", "last_page", "totalPages"):
        value = _as_int(info.get(key))
        if value is not None:
            return max(value, 1)

    per_page = _as_int(info.get("page_size")) or _as_int(info.get("per_page")) or page_size
    for key in ("total_results", "total_items", "total_records"):
        total = _as_int(info.get(key))
        if total is not None and per_page:
            return max(math.ceil(total / per_page), 1)
    return None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ---------- Deduplication and filtering ----------


def populated_fields(record: RawInvoiceRecord) -> int:
    return sum(1 for value in record.values() if value not in (None, "", [], {}))


def structural_hash(record: RawInvoiceRecord) -> str:
    canonical = json.dumps(record, sort_keys=True, default=str, ensure_ascii=False)
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def dedupe_records(records: List[RawInvoiceRecord]) -> List[RawInvoiceRecord]:
    """
    Collapse records sharing an identity.

    Identity is ``id``/``number``/``reference``/``code`` or a structural hash.
    On collision the record with strictly more populated fields wins; output
    keeps first-seen order.
    """
    chosen: Dict[str, RawInvoiceRecord] = {}
    for record in records:
        key = record_identity(record) or f"hash:{structural_hash(record)}"
        existing = chosen.get(key)
        if existing is None or populated_fields(record) > populated_fields(existing):
            chosen[key] = record
    return list(chosen.values())


def filter_by_date(
    records: List[RawInvoiceRecord], date_range: DateRange
) -> Tuple[List[RawInvoiceRecord], int]:
    """
    Client-side date filter.

    Returns the records inside the range and the number of records excluded
    because they carry no parseable date. An open range keeps everything.
    """
    if date_range.is_open:
        return list(records), 0
    kept = []
    undated = 0
    for record in records:
        value = extract_date(record)
        if value is None:
            undated += 1
        elif date_range.contains(value):
            kept.append(record)
    return kept, undated


def _snapshot(result: FetchResult) -> FetchResult:
    """Copy of a fetch result whose lists can be mutated without touching the original."""
    return replace(
        result,
        records=list(result.records),
        failed_pages=list(result.failed_pages),
        pagination=dict(result.pagination),
    )


# ---------- Fetcher ----------


class PurchaseFetcher:
    """Fetches, merges and deduplicates purchase pages from Siigo."""

    def __init__(
        self,
        settings: Settings,
        client: SiigoClient,
        cache: Optional[TTLCache] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
    ) -> None:
        self.settings = settings
        self.client = client
        self.cache = cache
        self._sleep = sleep
        self._jitter = jitter

    async def fetch_all(
        self,
        token: str,
        date_range: DateRange = DateRange(),
        *,
        concurrent: bool = False,
        max_pages: Optional[int] = None,
        use_cache: bool = True,
    ) -> FetchResult:
        """
        Retrieve every purchase page for the given range.

        Args:
            token: Bearer token
            date_range: Optional range, sent upstream and re-applied locally
            concurrent: Fan out pages 2..N after the first page
            max_pages: Hard cap on pages (defaults per mode from settings)
            use_cache: Serve and store complete snapshots in the TTL cache

        Raises:
            SiigoAuthError: When Siigo rejects the token
        """
        if max_pages is None:
            max_pages = self.settings.fan_out_max_pages if concurrent else self.settings.max_pages

        cache_key = self._cache_key(date_range, concurrent, max_pages)
        if use_cache and self.cache is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"[Fetcher] Cache hit for {cache_key}")
                return _snapshot(cached)

        if concurrent:
            result = await self._fetch_fan_out(token, date_range, max_pages)
        else:
            result = await self._fetch_sequential(token, date_range, max_pages)

        result.records_before_dedupe = len(result.records)
        deduped = dedupe_records(result.records)
        result.records_before_filter = len(deduped)
        result.records, result.undated_count = filter_by_date(deduped, date_range)

        logger.info(
            f"[Fetcher] Completed: pages={result.pages_fetched} failed={result.failed_pages} "
            f"raw={result.records_before_dedupe} unique={result.records_before_filter} "
            f"in_range={len(result.records)} undated={result.undated_count} reached_end={result.reached_end}"
        )

        if use_cache and self.cache is not None and not result.failed_pages:
            self.cache.set(cache_key, _snapshot(result))
        return result

    async def fetch_page(
        self,
        token: str,
        page: int,
        date_range: DateRange = DateRange(),
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Fetch a single page and apply the client-side date filter.

        Raises:
            SiigoAuthError: When Siigo rejects the token
            SiigoConnectionError: When the page failed after all retries
        """
        page_size = page_size or self.settings.page_size
        body = await self._fetch_with_retry(token, page, date_range, page_size)
        if body is None:
            raise SiigoConnectionError(f"Page {page} unavailable after retries")

        records, info = extract_page(body)
        filtered, _ = filter_by_date(records, date_range)
        pagination = dict(info) if info is not body else {}
        pagination.update(
            {
                "page": page,
                "page_size": page_size,
                "total_items": len(filtered),
                "original_total_items": len(records),
                "filtered_by_server": not date_range.is_open,
            }
        )
        return {"results": filtered, "pagination": pagination}

    async def _fetch_sequential(
        self,
        token: str,
        date_range: DateRange,
        max_pages: int,
        start_page: int = 1,
        result: Optional[FetchResult] = None,
    ) -> FetchResult:
        page_size = self.settings.page_size
        result = result or FetchResult(records=[])
        total_pages: Optional[int] = None
        consecutive_empty = 0
        consecutive_failed = 0

        page = start_page
        while page <= max_pages:
            body = await self._fetch_with_retry(token, page, date_range, page_size)

            if body is None:
                result.failed_pages.append(page)
                consecutive_failed += 1
                if total_pages is not None and page >= total_pages:
                    result.reached_end = True
                    break
                if total_pages is None and consecutive_failed >= MAX_CONSECUTIVE_FAILED_PAGES:
                    logger.warning(
                        f"[Fetcher] {consecutive_failed} consecutive pages failed, stopping at page {page}"
                    )
                    break
                page += 1
                continue

            consecutive_failed = 0
            result.pages_fetched += 1
            records, info = extract_page(body)
            declared = total_pages_from(info, page_size)
            if declared is not None:
                total_pages = declared
                result.pagination = dict(info)

            if records:
                consecutive_empty = 0
                result.records.extend(records)
            else:
                consecutive_empty += 1

            if total_pages is not None and page >= total_pages:
                result.reached_end = True
                break
            if total_pages is None and len(records) < page_size:
                result.reached_end = True
                break
            if consecutive_empty >= 2:
                result.reached_end = True
                break

            page += 1
            await self._sleep(self.settings.page_throttle_seconds + self._jitter(0, 0.12))
        else:
            logger.warning(f"[Fetcher] Safety cap of {max_pages} pages reached")

        return result

    async def _fetch_fan_out(
        self,
        token: str,
        date_range: DateRange,
        max_pages: int,
    ) -> FetchResult:
        page_size = self.settings.page_size
        result = FetchResult(records=[])

        first = await self._fetch_with_retry(token, 1, date_range, page_size)
        if first is None:
            result.failed_pages.append(1)
            return result

        result.pages_fetched = 1
        records, info = extract_page(first)
        result.records.extend(records)
        total_pages = total_pages_from(info, page_size)
        if total_pages is not None:
            result.pagination = dict(info)

        if total_pages is None:
            if len(records) < page_size:
                result.reached_end = True
                return result
            logger.info("[Fetcher] No page count in first page, continuing sequentially")
            return await self._fetch_sequential(
                token, date_range, max_pages, start_page=2, result=result
            )

        last_page = min(total_pages, max_pages)
        logger.info(f"[Fetcher] Fetching pages 2..{last_page} of {total_pages} concurrently")
        pages = list(range(2, last_page + 1))
        bodies = await asyncio.gather(
            *(self._fetch_with_retry(token, p, date_range, page_size) for p in pages)
        )

        for page, body in zip(pages, bodies):
            if body is None:
                result.failed_pages.append(page)
                continue
            result.pages_fetched += 1
            page_records, _ = extract_page(body)
            result.records.extend(page_records)

        result.reached_end = total_pages <= max_pages
        if not result.reached_end:
            logger.warning(
                f"[Fetcher] Only {max_pages} of {total_pages} pages fetched (fan-out cap)"
            )
        return result

    async def _fetch_with_retry(
        self,
        token: str,
        page: int,
        date_range: DateRange,
        page_size: int,
    ) -> Optional[Any]:
        """Return the page body, or None once retries are exhausted."""
        attempts = max(1, self.settings.max_retries_per_page)
        created_start = date_range.start.isoformat() if date_range.start else None
        created_end = date_range.end.isoformat() if date_range.end else None

        for attempt in range(1, attempts + 1):
            try:
                return await self.client.get_purchases_page(
                    token,
                    page,
                    page_size,
                    created_start=created_start,
                    created_end=created_end,
                )
            except SiigoAuthError:
                raise
            except SiigoAPIError as exc:
                wait_time = self._backoff(attempt)
                if exc.status_code == 429 and exc.retry_after is not None:
                    wait_time = min(exc.retry_after, MAX_BACKOFF_SECONDS) + self._jitter(0.2, 0.4)
                logger.warning(
                    f"[Fetcher] Page {page} attempt {attempt}/{attempts} failed: {exc}"
                )
            except SiigoConnectionError as exc:
                wait_time = self._backoff(attempt)
                logger.warning(
                    f"[Fetcher] Page {page} attempt {attempt}/{attempts} failed: {exc}"
                )

            if attempt < attempts:
                await self._sleep(wait_time)

        logger.warning(f"[Fetcher] Max retries reached on page {page}, skipping it")
        return None

    def _backoff(self, attempt: int) -> float:
        delay = min(MAX_BACKOFF_SECONDS, BACKOFF_BASE_SECONDS * (2**attempt))
        return delay + self._jitter(0.2, 0.4)

    @staticmethod
    def _cache_key(date_range: DateRange, concurrent: bool, max_pages: int) -> str:
        start = date_range.start.isoformat() if date_range.start else ""
        end = date_range.end.isoformat() if date_range.end else ""
        mode = "fan-out" if concurrent else "sequential"
        return f"siigo:purchases:{start}:{end}:{mode}:{max_pages}"
