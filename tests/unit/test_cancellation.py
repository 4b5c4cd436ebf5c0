from __future__ import annotations

from inkstrip.cancellation import CancellationSource, CancellationToken


def test_issue_supersedes_previous_token() -> None:
    source = CancellationSource()
    first = source.issue()
    second = source.issue()

    assert second > first
    assert not source.is_current(first)
    assert source.is_current(second)
    assert source.current == second


def test_cancel_supersedes_without_new_work() -> None:
    source = CancellationSource()
    token = source.current

    source.cancel()

    assert not source.is_current(token)
    assert source.current == CancellationToken(token.value + 1)
