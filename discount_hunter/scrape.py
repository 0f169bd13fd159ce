import argparse
import asyncio
import inspect
import logging
import signal
import sys
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from .config import Settings, get_settings, make_settings
from .errors import ConfigurationError, ScrapeError
from .export import append_jsonl, export_filename, to_csv
from .fetcher import BrowserBackend, FetchClient
from .identifiers import normalize_identifiers, read_identifiers
from .normalizer import build_record, error_record
from .parser import extract_product
from .schema import BatchResult, ProductRecord, Stats, utcnow

logger = logging.getLogger(__name__)

OnResult = Callable[[ProductRecord, Stats], Union[None, Awaitable[None]]]


class Batch:
    """
    One run over a list of identifiers.

    Up to `concurrency` workers pull identifiers from a queue and push
    finished records onto a completion queue. run() is the only reader of
    that queue and the only writer of the record buffer and stats, so
    callers always see stats that match the records delivered so far.
    A Batch runs once; make a new one per submission.
    """

    def __init__(
        self,
        identifiers: Iterable[str],
        client: FetchClient,
        settings: Optional[Settings] = None,
        parser=extract_product,
        concurrency: Optional[int] = None,
    ):
        self.identifiers: List[str] = list(identifiers)
        self.client = client
        self.settings = settings or client.settings
        self.parser = parser
        self.concurrency = self.settings.concurrency if concurrency is None else concurrency
        if self.concurrency <= 0:
            raise ConfigurationError(f"concurrency must be positive, got {self.concurrency}", config_key="concurrency")

        self._records: List[ProductRecord] = []
        self._stats = Stats(total=len(self.identifiers))
        self._cancel = asyncio.Event()
        self._workers: List[asyncio.Task] = []
        self._started = False
        self._started_at = utcnow()
        self.result: Optional[BatchResult] = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def stats(self) -> Stats:
        return self._stats

    def cancel(self):
        """Stop starting new pipelines; abort in-flight ones if abort_in_flight is set."""
        if self._cancel.is_set():
            return
        logger.info("[BATCH] cancel requested after %d/%d", self._stats.processed, self._stats.total)
        self._cancel.set()
        if self.settings.abort_in_flight:
            for task in self._workers:
                task.cancel()

    def snapshot(self) -> BatchResult:
        return BatchResult(
            records=tuple(self._records),
            stats=self._stats,
            cancelled=self.cancelled,
            started_at=self._started_at,
            finished_at=self.result.finished_at if self.result else None,
        )

    async def _process(self, identifier: str) -> ProductRecord:
        s = self.settings
        try:
            doc = await self.client.fetch(identifier)
            parsed = self.parser(doc)
            record = build_record(identifier, parsed, doc.fetched_at, s.currency, s.currency_symbol)
        except ScrapeError as e:
            logger.warning("[JOB] ERR  → %s | %s", identifier, e.reason)
            return error_record(identifier, e, s.currency, s.currency_symbol)
        except Exception as e:
            logger.exception("[JOB] ERR  → %s | unexpected %s", identifier, type(e).__name__)
            return error_record(identifier, e, s.currency, s.currency_symbol)
        logger.info("[JOB] OK   → %s | %s | %s%d | %s", record.asin, record.title[:60],
                    record.currency_symbol, record.final_price, record.status.value)
        return record

    async def _worker(self, work: asyncio.Queue, done: asyncio.Queue):
        try:
            while not self._cancel.is_set():
                try:
                    identifier = work.get_nowait()
                except asyncio.QueueEmpty:
                    return
                record = await self._process(identifier)
                done.put_nowait(record)
        finally:
            # one sentinel per worker, also when aborted
            done.put_nowait(None)

    async def _accept(self, record: ProductRecord, on_result: Optional[OnResult]):
        self._records.append(record)
        self._stats = Stats.from_records(self._records, total=len(self.identifiers))
        if on_result is not None:
            res = on_result(record, self._stats)
            if inspect.isawaitable(res):
                await res

    async def run(self, on_result: Optional[OnResult] = None) -> BatchResult:
        if self._started:
            raise RuntimeError("Batch.run() can only be called once")
        self._started = True
        self._started_at = utcnow()
        total = len(self.identifiers)
        logger.info("[BATCH] %d identifiers, concurrency %d", total, min(self.concurrency, total))

        work: asyncio.Queue = asyncio.Queue()
        done: asyncio.Queue = asyncio.Queue()
        for identifier in self.identifiers:
            work.put_nowait(identifier)

        n_workers = min(self.concurrency, total)
        self._workers = [asyncio.create_task(self._worker(work, done)) for _ in range(n_workers)]
        try:
            remaining = n_workers
            while remaining:
                record = await done.get()
                if record is None:
                    remaining -= 1
                    continue
                await self._accept(record, on_result)
        finally:
            for task in self._workers:
                task.cancel()
            await asyncio.gather(*self._workers, return_exceptions=True)

        self.result = BatchResult(
            records=tuple(self._records),
            stats=self._stats,
            cancelled=self.cancelled,
            started_at=self._started_at,
            finished_at=utcnow(),
        )
        st = self._stats
        logger.info("[BATCH] %s: %d/%d processed, %d ok, %d failed, %d discounts",
                    "cancelled" if self.cancelled else "done",
                    st.processed, st.total, st.succeeded, st.failed, st.discounts_found)
        return self.result

    async def stream(self):
        """Async iterator of (record, stats) as items complete; the final result lands in .result."""
        updates: asyncio.Queue = asyncio.Queue()
        runner = asyncio.ensure_future(self.run(on_result=lambda r, st: updates.put_nowait((r, st))))
        runner.add_done_callback(lambda _: updates.put_nowait(None))
        try:
            while True:
                item = await updates.get()
                if item is None:
                    break
                yield item
            await runner
        finally:
            if not runner.done():
                runner.cancel()
                await asyncio.gather(runner, return_exceptions=True)


async def run_batch(
    identifiers: Union[str, Iterable[str]],
    settings: Optional[Settings] = None,
    client: Optional[FetchClient] = None,
    on_result: Optional[OnResult] = None,
) -> BatchResult:
    """Normalize raw input and run it as a single batch."""
    settings = settings or get_settings()
    ids = normalize_identifiers(identifiers, case_insensitive=settings.case_insensitive_dedup)
    if client is not None:
        return await Batch(ids, client, settings).run(on_result)
    async with FetchClient(settings) as own_client:
        return await Batch(ids, own_client, settings).run(on_result)


async def _run_cli(ids: List[str], settings: Settings, use_browser: bool, jsonl: Optional[Path]) -> BatchResult:
    backend = BrowserBackend(settings.user_agent, settings.request_timeout) if use_browser else None
    async with FetchClient(settings, backend=backend) as client:
        batch = Batch(ids, client, settings)
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, batch.cancel)
        except (NotImplementedError, RuntimeError):
            pass  # no signal handlers on this platform; Ctrl-C aborts instead

        def on_result(record: ProductRecord, stats: Stats):
            if jsonl:
                append_jsonl(jsonl, record)
            print(f"[{stats.processed}/{stats.total}] {record.asin} {record.status.value}")

        return await batch.run(on_result)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Fetch prices, coupons and deal badges for a batch of ASINs.")
    parser.add_argument("asins", nargs="*", help="ASINs (comma or space separated)")
    parser.add_argument("--file", type=Path, help="line-delimited or single-column CSV of ASINs")
    parser.add_argument("--concurrency", type=int, help="max pages fetched at once")
    parser.add_argument("--csv", type=Path, nargs="?", const=Path(export_filename()),
                        help="write a CSV export (default name: amazon_discounts_<date>.csv)")
    parser.add_argument("--jsonl", type=Path, help="append one JSON record per line as results arrive")
    parser.add_argument("--browser", action="store_true", help="render pages with headless Chromium")
    parser.add_argument("--case-insensitive", action="store_true", help="treat b0abc and B0ABC as the same ASIN")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)-8s - %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = get_settings()
        overrides = {}
        if args.concurrency is not None:
            overrides["concurrency"] = args.concurrency
        if args.case_insensitive:
            overrides["case_insensitive_dedup"] = True
        if overrides:
            settings = make_settings(**{**settings.model_dump(mode="json"), **overrides})

        raw: List[str] = list(args.asins)
        if args.file:
            with open(args.file, "rb") as f:
                raw.extend(read_identifiers(f))
        ids = normalize_identifiers(",".join(raw), case_insensitive=settings.case_insensitive_dedup)
    except (ScrapeError, OSError) as e:
        logger.error("%s", e)
        return 2

    if not ids:
        print("No ASINs given.")
        return 0

    result = asyncio.run(_run_cli(ids, settings, args.browser, args.jsonl))

    if args.csv:
        args.csv.write_text(to_csv(result), encoding="utf-8")
        print(f"Wrote {len(result.records)} rows to {args.csv}")
    st = result.stats
    print(f"Done: {st.processed}/{st.total} processed, {st.succeeded} ok, {st.failed} failed, "
          f"{st.discounts_found} with discounts{' (cancelled)' if result.cancelled else ''}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
