"""Tests for per-compound-code locks."""

import threading

from src.services.compound_locks import compound_locks


class TestCompoundLocks:
    def test_codes_sorted_and_deduplicated(self):
        with compound_locks(["sk2", "nk5", None, "sk2"]) as held:
            assert held == ["nk5", "sk2"]

    def test_reentrant_in_same_thread(self):
        with compound_locks(["nk5"]):
            with compound_locks(["nk5", "sk2"]) as held:
                assert held == ["nk5", "sk2"]

    def test_other_thread_waits_for_release(self):
        events = []
        inside = threading.Event()
        release = threading.Event()

        def holder():
            with compound_locks(["nk5"]):
                events.append("holder-in")
                inside.set()
                release.wait(timeout=5)
                events.append("holder-out")

        def waiter():
            inside.wait(timeout=5)
            with compound_locks(["nk5"]):
                events.append("waiter-in")

        first = threading.Thread(target=holder)
        second = threading.Thread(target=waiter)
        first.start()
        second.start()
        inside.wait(timeout=5)
        second.join(timeout=0.2)
        assert "waiter-in" not in events
        release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        assert events == ["holder-in", "holder-out", "waiter-in"]

    def test_disjoint_codes_do_not_block(self):
        acquired = []

        def other():
            with compound_locks(["zz-disjoint"]):
                acquired.append(True)

        with compound_locks(["nk5"]):
            thread = threading.Thread(target=other)
            thread.start()
            thread.join(timeout=5)
        assert acquired == [True]
