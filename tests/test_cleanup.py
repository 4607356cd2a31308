from __future__ import annotations

from cleanup import CleanupStack


def test_close_runs_in_reverse_order() -> None:
    calls: list[str] = []
    stack = CleanupStack()
    stack.push("stream", lambda: calls.append("stream"))
    stack.push("context", lambda: calls.append("context"))
    stack.push("recorder", lambda: calls.append("recorder"))

    assert stack.close() == []
    assert calls == ["recorder", "context", "stream"]
    assert len(stack) == 0


def test_failing_step_does_not_block_others() -> None:
    calls: list[str] = []

    def boom() -> None:
        raise RuntimeError("already closed")

    stack = CleanupStack()
    stack.push("stream", lambda: calls.append("stream"))
    stack.push("context", boom)
    stack.push("recorder", lambda: calls.append("recorder"))

    failures = stack.close()

    assert calls == ["recorder", "stream"]
    assert [label for label, _ in failures] == ["context"]


def test_close_twice_is_noop() -> None:
    calls: list[str] = []
    stack = CleanupStack()
    stack.push("stream", lambda: calls.append("stream"))

    stack.close()
    stack.close()

    assert calls == ["stream"]
