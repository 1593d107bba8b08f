"""Tests for block windows and range chunking."""

import pytest

from launchpad_indexer.app.application.services.block_range import BlockRange, chunk_range, next_window


class TestBlockRange:
    def test_len_is_inclusive(self) -> None:
        assert len(BlockRange(10, 10)) == 1
        assert len(BlockRange(10, 19)) == 10

    def test_validate_rejects_inverted_range(self) -> None:
        with pytest.raises(ValueError):
            BlockRange(5, 4).validate()

    def test_validate_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            BlockRange(-1, 4).validate()


class TestNextWindow:
    def test_nothing_to_do_ahead_of_confirmed_head(self) -> None:
        assert next_window(cursor=98, head=100, confirmations=3, batch_size=50) is None

    def test_window_stops_at_confirmed_head(self) -> None:
        window = next_window(cursor=90, head=100, confirmations=3, batch_size=50)
        assert window == BlockRange(90, 97)

    def test_window_capped_by_batch_size(self) -> None:
        window = next_window(cursor=0, head=1000, confirmations=3, batch_size=50)
        assert window == BlockRange(0, 50)

    def test_single_block_window_at_target(self) -> None:
        assert next_window(cursor=97, head=100, confirmations=3, batch_size=50) == BlockRange(97, 97)


class TestChunkRange:
    def test_chunks_cover_range_without_overlap(self) -> None:
        chunks = chunk_range(BlockRange(0, 10_499), 5000)
        assert chunks == [BlockRange(0, 4999), BlockRange(5000, 9999), BlockRange(10_000, 10_499)]

    def test_small_range_is_one_chunk(self) -> None:
        assert chunk_range(BlockRange(7, 9), 5000) == [BlockRange(7, 9)]

    def test_rejects_non_positive_chunk(self) -> None:
        with pytest.raises(ValueError):
            chunk_range(BlockRange(0, 1), 0)
