"""Rate limited producer, worker loop and pool lifecycle."""

import concurrent.futures
import logging
import sys
import threading
from pathlib import Path
from typing import AsyncIterator, Callable

import aiofiles
from tqdm import tqdm

from . import Config, HostparserError, Job, PipelineStats
from .channel import JobQueue, QueueClosed
from .normalize import Normalizer
from .pool import ExecutionPool
from .ratelimit import TokenBucket
from .sink import LineSink

logger = logging.getLogger(__name__)

# consecutive read failures tolerated before input is treated as ended
MAX_READ_FAILURES = 100


class InputError(HostparserError):
    """Raised when the input file cannot be opened."""


async def read_hosts(stream) -> AsyncIterator[str]:
    """Yield stripped, non-empty hostnames from an async binary stream.

    Lines that are not valid UTF-8 and lines that fail to read are logged
    and skipped; neither ends the stream.
    """
    lineno = 0
    failures = 0
    while True:
        try:
            raw = await stream.readline()
        except OSError as e:
            lineno += 1
            failures += 1
            logger.warning(f"Could not read input line {lineno}: {e}")
            if failures >= MAX_READ_FAILURES:
                logger.error(
                    f"Giving up on input after {failures} consecutive read errors"
                )
                return
            continue
        failures = 0
        if not raw:
            return
        lineno += 1
        try:
            host = raw.decode("utf-8").strip()
        except UnicodeDecodeError as e:
            logger.warning(f"Skipping input line {lineno}: not valid UTF-8 ({e})")
            continue
        if host:
            yield host


async def _admit(
    stream, queue: JobQueue[Job], limiter: TokenBucket, stats: PipelineStats
) -> None:
    async for host in read_hosts(stream):
        stats.read += 1
        await limiter.acquire()
        try:
            queue.send(Job(host))
        except QueueClosed as e:
            stats.unsent += 1
            logger.debug(f"Dropped {host!r}: {e}")
            continue
        stats.admitted += 1


async def produce(
    queue: JobQueue[Job],
    limiter: TokenBucket,
    stats: PipelineStats,
    path: Path | None = None,
) -> None:
    """Feed hosts from ``path`` (stdin when ``None``) into ``queue``.

    The queue is always closed on the way out so workers can drain.
    """
    try:
        if path is None:
            await _admit(aiofiles.stdin_bytes, queue, limiter, stats)
        else:
            try:
                f = await aiofiles.open(path, "rb")
            except OSError as e:
                raise InputError(f"could not open input {path}: {e}") from e
            try:
                await _admit(f, queue, limiter, stats)
            finally:
                await f.close()
    finally:
        queue.close()
        logger.debug(f"Producer finished: {stats.admitted} jobs admitted")


async def consume(
    queue: JobQueue[Job],
    normalizer: Normalizer,
    sink: LineSink,
    on_job: Callable[[], None] | None = None,
) -> tuple[int, int]:
    """Worker loop: normalize jobs until the queue is closed and drained.

    Returns:
        ``(processed, emitted)`` for this worker.
    """
    processed = emitted = 0
    with queue.consumer():
        while True:
            try:
                job = await queue.receive()
            except QueueClosed:
                break
            processed += 1
            result = normalizer.normalize(job.host)
            if on_job is not None:
                on_job()
            if result is None:
                continue
            sink.emit(str(result))
            emitted += 1
    return processed, emitted


def build_normalizer(config: Config) -> Normalizer:
    return Normalizer(
        include_private=config.include_private,
        offline=config.offline,
        cache_dir=config.cache_dir,
    )


def run_pipeline(
    config: Config,
    sink: LineSink | None = None,
    normalizer: Normalizer | None = None,
) -> PipelineStats:
    """Run producer and workers to completion and return the run's counters.

    One producer and ``config.concurrency`` workers are spread over
    ``config.workers`` threads. Returns only after every worker has seen the
    queue closed and drained; the threads are stopped afterwards.
    """
    if normalizer is None:
        normalizer = build_normalizer(config)
    if sink is None:
        sink = LineSink()
    queue: JobQueue[Job] = JobQueue()
    limiter = TokenBucket(config.rate)
    stats = PipelineStats()

    progress = tqdm(desc="hosts", unit="host", file=sys.stderr, disable=not config.progress)
    progress_lock = threading.Lock()

    def tick() -> None:
        with progress_lock:
            progress.update(1)

    logger.info(
        f"Starting {config.concurrency} workers on {config.workers} threads "
        f"at {config.rate} hosts/s"
    )
    try:
        # threads are joined after a clean drain, abandoned on error
        with ExecutionPool(config.workers) as pool:
            producer = pool.spawn(produce(queue, limiter, stats, config.input_file))
            workers = [
                pool.spawn(consume(queue, normalizer, sink, tick if config.progress else None))
                for _ in range(config.concurrency)
            ]
            concurrent.futures.wait(workers)
            for fut in workers:
                processed, emitted = fut.result()
                stats.processed += processed
                stats.emitted += emitted
            producer.result()
    finally:
        progress.close()
        sink.flush()
        stats.written = sink.count

    logger.info(
        f"Done: {stats.read} read, {stats.admitted} admitted, "
        f"{stats.emitted} emitted ({stats.written} written), "
        f"{stats.failed} unresolved, {stats.unsent} dropped"
    )
    return stats
