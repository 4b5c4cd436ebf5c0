"""Token-based cooperative cancellation."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True)
class CancellationToken:
    """Ticket identifying one request; superseded once a newer token is issued."""

    value: int


class CancellationSource:
    """Issues strictly increasing tokens; only the latest one is current.

    Work captures a token when it starts and checks `is_current` after every
    suspension point, discarding its result once the token is superseded.
    """

    def __init__(self) -> None:
        self._counter = 0

    @property
    def current(self) -> CancellationToken:
        """Return the current token."""
        return CancellationToken(self._counter)

    def issue(self) -> CancellationToken:
        """Supersede outstanding work and return the new current token."""
        self._counter += 1
        return CancellationToken(self._counter)

    def cancel(self) -> None:
        """Supersede every outstanding token without starting new work."""
        self._counter += 1

    def is_current(self, token: CancellationToken) -> bool:
        """Return whether `token` has not been superseded."""
        return token.value == self._counter
