from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BlockRange:
    from_block: int
    to_block: int

    def validate(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise ValueError("Block numbers must be non-negative")
        if self.from_block > self.to_block:
            raise ValueError("from_block must be <= to_block")

    def __len__(self) -> int:
        return self.to_block - self.from_block + 1


def next_window(*, cursor: int, head: int, confirmations: int, batch_size: int) -> BlockRange | None:
    """
    Next block window to index, or None while the cursor is ahead of the
    confirmed head (head - confirmations).

    The window spans at most batch_size + 1 blocks: [cursor, cursor + batch_size].
    """
    target = head - confirmations
    if cursor > target:
        return None
    window = BlockRange(from_block=cursor, to_block=min(cursor + batch_size, target))
    window.validate()
    return window


def chunk_range(block_range: BlockRange, chunk_size: int) -> list[BlockRange]:
    """Split an inclusive range into consecutive inclusive chunks of at most chunk_size blocks."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    block_range.validate()
    out: list[BlockRange] = []
    start = block_range.from_block
    while start <= block_range.to_block:
        end = min(start + chunk_size - 1, block_range.to_block)
        out.append(BlockRange(from_block=start, to_block=end))
        start = end + 1
    return out
