"""Utility functions and decorators."""

import asyncio
import logging.config
import os
import structlog
import yaml
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar, Union
from tenacity import retry, retry_if_exception, retry_if_exception_type, stop_after_attempt, wait_exponential

T = TypeVar('T')

MAX_WORKERS_CEILING = 16


def retry_with_backoff(
    max_retries: int = 3,
    backoff_factor: float = 1.5,
    max_wait: float = 60.0,
    retry_on: Optional[Callable[[BaseException], bool]] = None
):
    """Decorator for retry with exponential backoff.

    ``retry_on`` narrows which exceptions are retried; by default all are.
    """
    return retry(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential(multiplier=backoff_factor, max=max_wait),
        retry=retry_if_exception(retry_on) if retry_on else retry_if_exception_type(Exception),
        reraise=True
    )


def setup_logging(
    config_path: Optional[Union[str, Path]] = None,
    log_level: str = "INFO",
    log_format: str = "console"
) -> None:
    """Setup structured logging configuration."""
    if config_path and Path(config_path).exists():
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
        logging.config.dictConfig(config)
    else:
        logging.basicConfig(
            level=getattr(logging, log_level.upper()),
            format='%(message)s'
        )

    json_output = bool(config_path) or log_format == "json"

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def default_worker_count(requested: Optional[int] = None, ceiling: int = MAX_WORKERS_CEILING) -> int:
    """Worker cap: explicit request, else host cores, never above ``ceiling``."""
    if requested is not None and requested > 0:
        return min(requested, ceiling)
    return max(1, min(os.cpu_count() or 1, ceiling))


async def gather_with_concurrency(
    coros: list,
    max_concurrency: int = 10,
    return_exceptions: bool = True
) -> list:
    """Execute coroutines with limited concurrency."""
    semaphore = asyncio.Semaphore(max_concurrency)

    async def limited_coro(coro):
        async with semaphore:
            return await coro

    limited_coros = [limited_coro(coro) for coro in coros]
    return await asyncio.gather(*limited_coros, return_exceptions=return_exceptions)


async def gather_in_batches(
    factories: Sequence[Callable[[], Awaitable[T]]],
    batch_size: int,
    on_batch: Optional[Callable[[List[T]], Awaitable[None]]] = None,
    should_continue: Optional[Callable[[], bool]] = None
) -> List[T]:
    """Run coroutine factories in fixed-size batches, awaiting each batch in full.

    ``on_batch`` receives every completed batch before the next one starts.
    Returns the results of all batches that were started.
    """
    results: List[T] = []
    for start in range(0, len(factories), batch_size):
        if should_continue is not None and not should_continue():
            break
        batch = await asyncio.gather(*(factory() for factory in factories[start:start + batch_size]))
        if on_batch is not None:
            await on_batch(list(batch))
        results.extend(batch)
    return results
