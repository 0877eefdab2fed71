import threading
import time
from concurrent.futures import Future

from packer_sync.futures import FuturePool


def test_drain_all_waits_for_every_registered_future() -> None:
    finished: list[int] = []
    lock = threading.Lock()

    def work(value: int) -> int:
        time.sleep(0.01 * (value % 3))
        with lock:
            finished.append(value)
        return value

    with FuturePool(4) as pool:
        for value in range(10):
            pool.spawn(work, value)
        drained = pool.drain_all("working")
        assert drained == 10
        assert pool.outstanding == 0
    assert sorted(finished) == list(range(10))


def test_drain_all_with_nothing_registered_returns_immediately() -> None:
    with FuturePool(1) as pool:
        assert pool.drain_all("idle") == 0


def test_futures_registered_while_draining_are_counted() -> None:
    pool = FuturePool(1)
    first: Future = Future()
    second: Future = Future()
    pool.register(first)

    drained: list[int] = []
    drainer = threading.Thread(target=lambda: drained.append(pool.drain_all("late arrivals")))
    drainer.start()
    pool.register(second)
    first.set_result("a")
    second.set_result("b")
    drainer.join(timeout=5)

    assert not drainer.is_alive()
    assert drained == [2]
    assert pool.outstanding == 0
    pool.shutdown()


def test_task_spawning_more_work_is_drained_in_the_same_pass() -> None:
    with FuturePool(2) as pool:
        def parent() -> str:
            pool.spawn(lambda: "child")
            return "parent"

        pool.spawn(parent)
        assert pool.drain_all("nested") == 2
        assert pool.outstanding == 0


def test_task_that_raises_still_completes_the_drain(caplog) -> None:
    def boom() -> None:
        raise RuntimeError("boom")

    with FuturePool(2) as pool:
        pool.spawn(boom)
        pool.spawn(lambda: "fine")
        assert pool.drain_all("mixed") == 2
    assert "boom" in caplog.text


def test_pool_is_reusable_across_stages() -> None:
    with FuturePool(2) as pool:
        for _ in range(3):
            pool.spawn(lambda: None)
        assert pool.drain_all("first stage") == 3
        for _ in range(5):
            pool.spawn(lambda: None)
        assert pool.drain_all("second stage") == 5
