"""Tests for post-commit side-effect dispatch."""

import threading

import pytest

from procureflow.core.errors import SideEffectWarning
from procureflow.workers.dispatcher import SideEffectDispatcher, wait_all

from tests.fakes import InlineExecutor


@pytest.fixture
def pool():
    dispatcher = SideEffectDispatcher(max_workers=2)
    yield dispatcher
    dispatcher.shutdown()


class TestSideEffectDispatcher:
    """Test fire-and-forget task handling."""

    def test_successful_task(self, pool):
        handle = pool.dispatch("notify:po_approved", lambda a, b: a + b, 2, 3)

        assert handle.wait(timeout=5) is None
        assert handle.succeeded
        assert handle.future.result() == 5

    def test_failure_becomes_warning(self, pool):
        def fail():
            raise ConnectionError("mail relay down")

        handle = pool.dispatch("email:po_rejected", fail)
        warning = handle.wait(timeout=5)

        assert isinstance(warning, SideEffectWarning)
        assert warning.task_name == "email:po_rejected"
        assert isinstance(warning.error, ConnectionError)
        assert "mail relay down" in str(warning)

    def test_dispatch_does_not_block(self, pool):
        """Test dispatch returns while the task is still running."""
        release = threading.Event()
        handle = pool.dispatch("generate_pdf", release.wait, 5)

        assert not handle.done
        assert handle.warning is None
        assert "pending" in repr(handle)
        release.set()
        assert handle.wait(timeout=5) is None

    def test_siblings_are_independent(self):
        dispatcher = SideEffectDispatcher(executor=InlineExecutor())
        calls = []

        def fail():
            raise RuntimeError("boom")

        handles = [
            dispatcher.dispatch("first", calls.append, 1),
            dispatcher.dispatch("second", fail),
            dispatcher.dispatch("third", calls.append, 3),
        ]

        assert calls == [1, 3]
        assert [w.task_name for w in wait_all(handles)] == ["second"]

    def test_failed_handle(self):
        dispatcher = SideEffectDispatcher(executor=InlineExecutor())
        handle = dispatcher.failed("resolve_recipients", LookupError("no users"))

        assert handle.done
        assert not handle.succeeded
        assert handle.warning.task_name == "resolve_recipients"
