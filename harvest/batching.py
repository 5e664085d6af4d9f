import asyncio, logging
from typing import Awaitable, Callable, Iterator, List, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for i in range(0, len(items), size):
        yield list(items[i:i + size])


async def run_in_chunks(
    items: Sequence[T],
    concurrency: int,
    worker: Callable[[T], Awaitable[T]],
    on_chunk: Optional[Callable[[List[T]], None]] = None,
) -> List[T]:
    """
    Run ``worker`` over ``items`` at most ``concurrency`` at a time.

    Items go in consecutive chunks; a chunk is fully settled before the next
    one starts. A worker that raises leaves its item as it was. Results come
    back by value and are folded here, never inside the workers.
    ``on_chunk`` sees everything settled so far after each chunk.
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be positive, got {concurrency}")

    done: List[T] = []
    total = len(items)
    for n, chunk in enumerate(chunked(items, concurrency), start=1):
        logger.info("[BATCH] chunk %d: %d item(s), %d/%d settled", n, len(chunk), len(done), total)
        results = await asyncio.gather(*(worker(item) for item in chunk), return_exceptions=True)
        for item, result in zip(chunk, results):
            if isinstance(result, Exception):
                logger.error("[BATCH] ERR  → %s | %s: %s", getattr(item, "link", item), type(result).__name__, result)
                done.append(item)
            elif isinstance(result, BaseException):
                raise result
            else:
                done.append(result)
        if on_chunk is not None:
            on_chunk(list(done))
    return done
