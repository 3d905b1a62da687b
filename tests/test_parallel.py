import threading

import pytest

from segner.parallel import parallel_map, parallel_reduce, partition


def test_partition_is_contiguous_and_balanced():
    assert partition(list(range(7)), 3) == [[0, 1, 2], [3, 4], [5, 6]]


def test_partition_never_returns_empty_chunks():
    assert partition([1, 2], 5) == [[1], [2]]
    assert partition([], 4) == []


def test_partition_rejects_zero_parts():
    with pytest.raises(ValueError):
        partition([1, 2, 3], 0)


@pytest.mark.parametrize("num_threads", [1, 2, 4, 16])
def test_parallel_map_keeps_input_order(num_threads):
    assert parallel_map(lambda x: x * x, list(range(20)), num_threads) == [x * x for x in range(20)]


def test_parallel_reduce_folds_in_chunk_order():
    result = parallel_reduce(
        lambda chunk: "".join(chunk),
        lambda acc, part: acc + part,
        list("abcdefgh"),
        num_threads=3,
        initial="",
    )
    assert result == "abcdefgh"


def test_parallel_map_uses_worker_threads():
    seen = set()

    def record(x):
        seen.add(threading.get_ident())
        return x

    parallel_map(record, list(range(8)), num_threads=4)
    assert threading.get_ident() not in seen


def test_worker_exception_propagates():
    def boom(x):
        if x == 3:
            raise RuntimeError("bad item")
        return x

    with pytest.raises(RuntimeError, match="bad item"):
        parallel_map(boom, list(range(6)), num_threads=3)
