import threading
import time

from app.core.single_flight import SingleFlight


def test_uncontended_hold():
    flight = SingleFlight()
    with flight.hold("a") as contended:
        assert contended is False
        assert flight.in_flight() == ["a"]
    assert flight.in_flight() == []


def test_different_keys_do_not_block():
    flight = SingleFlight()
    with flight.hold("a") as first:
        with flight.hold("b") as second:
            assert (first, second) == (False, False)


def test_waiter_sees_contention():
    flight = SingleFlight()
    entered = threading.Event()
    release = threading.Event()
    results = []

    def leader():
        with flight.hold("a"):
            entered.set()
            release.wait(timeout=5)

    def follower():
        with flight.hold("a") as contended:
            results.append(contended)

    leader_thread = threading.Thread(target=leader)
    leader_thread.start()
    entered.wait(timeout=5)

    follower_thread = threading.Thread(target=follower)
    follower_thread.start()
    time.sleep(0.05)
    assert results == []

    release.set()
    leader_thread.join(timeout=5)
    follower_thread.join(timeout=5)

    assert results == [True]
    assert flight.in_flight() == []
