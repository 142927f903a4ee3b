import threading
import time

from app.services.locks import KeyedLocks


def _run_threads(target, n=8):
    threads = [threading.Thread(target=target) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()


def test_same_entity_is_serialized():
    locks = KeyedLocks()
    inside = []
    peak = []

    def work():
        with locks.hold("milestone", "m-1"):
            inside.append(1)
            peak.append(len(inside))
            time.sleep(0.005)
            inside.pop()

    _run_threads(work)
    assert max(peak) == 1
    assert locks.active_keys() == 0


def test_different_entities_do_not_block_each_other():
    locks = KeyedLocks()
    first_held = threading.Event()
    release_first = threading.Event()

    def hold_first():
        with locks.hold("material", "a"):
            first_held.set()
            release_first.wait(timeout=2)

    holder = threading.Thread(target=hold_first)
    holder.start()
    first_held.wait(timeout=2)
    # Would deadlock if keys shared one mutex
    with locks.hold("material", "b"):
        assert locks.active_keys() == 2
    release_first.set()
    holder.join()
    assert locks.active_keys() == 0


def test_lock_released_on_error():
    locks = KeyedLocks()
    try:
        with locks.hold("vendor", 1):
            raise RuntimeError("boom")
    except RuntimeError:
        pass
    with locks.hold("vendor", 1):
        pass
    assert locks.active_keys() == 0
