"""
Group records into fixed-size batches without materializing the input
"""

from typing import AsyncIterable, AsyncIterator, Iterable, Iterator, List, TypeVar

T = TypeVar("T")


def _check_size(size: int):
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")


def batched(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """
    Yield lists of at most `size` items, in order.

    A batch is yielded as soon as it is full; a trailing partial batch is
    flushed at end of input. Empty input yields nothing.
    """
    _check_size(size)

    batch: List[T] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []

    if batch:
        yield batch


async def abatched(items: AsyncIterable[T], size: int) -> AsyncIterator[List[T]]:
    """Async counterpart of batched for streamed sources"""
    _check_size(size)

    batch: List[T] = []
    async for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []

    if batch:
        yield batch
