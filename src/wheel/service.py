"""
Change subscription host for derived views.

ProjectionService holds the caller's side inputs (marks, earnings dates,
phase overrides) and recomputes the derived view whenever the journal or
one of those inputs changes, pushing the new view to every subscriber.
"""

import logging
from collections.abc import Mapping
from datetime import date
from typing import Any, Callable, Iterable, Optional

from .alerts import AlertEngine
from .config import ProjectionConfig
from .derive import derive_view
from .models import DerivedView
from .state import PhaseOverride, WheelPhase

logger = logging.getLogger(__name__)

EventSource = Callable[[], Iterable[Any]]
ViewCallback = Callable[[DerivedView], None]


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop updates."""

    def __init__(self, service: "ProjectionService", callback: ViewCallback):
        self._service = service
        self.callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        """Stop receiving views. Safe to call more than once."""
        if self.active:
            self._service._remove(self)
            self.active = False


class ProjectionService:
    """
    Recomputes the derived view on demand and notifies subscribers.

    The service is not thread-safe; callers serialise notify_changed().

    Example:
        >>> service = ProjectionService(lambda: journal.events)
        >>> sub = service.subscribe(lambda view: render(view.alerts))
        >>> service.set_marks({"AAPL_150_2025-12-19_P": 0.12})
        >>> sub.unsubscribe()
    """

    def __init__(
        self,
        event_source: EventSource,
        config: Optional[ProjectionConfig] = None,
        engine: Optional[AlertEngine] = None,
        as_of: Optional[Callable[[], date]] = None,
    ):
        """
        Args:
            event_source: Zero-argument callable returning the current events
            config: Projection and alert thresholds
            engine: Alert engine with a custom rule set
            as_of: Callable returning the evaluation date (defaults to today)
        """
        self.event_source = event_source
        self.config = config or ProjectionConfig()
        self.engine = engine or AlertEngine()
        self._as_of = as_of or date.today
        self._marks: dict[str, float] = {}
        self._earnings: dict[str, str] = {}
        self._overrides: dict[str, PhaseOverride] = {}
        self._subscriptions: list[Subscription] = []
        self._view: Optional[DerivedView] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, callback: ViewCallback) -> Subscription:
        """Register a callback that receives every recomputed view."""
        subscription = Subscription(self, callback)
        self._subscriptions.append(subscription)
        logger.debug(f"Subscriber added ({len(self._subscriptions)} total)")
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Subscriber removed ({len(self._subscriptions)} remaining)")

    def set_marks(self, marks: Mapping[str, float]) -> DerivedView:
        """Replace current option marks (position id -> price per share)."""
        self._marks = dict(marks)
        return self.notify_changed()

    def set_earnings(self, earnings: Mapping[str, str]) -> DerivedView:
        """Replace next earnings dates (ticker -> YYYY-MM-DD)."""
        self._earnings = {ticker.upper(): day for ticker, day in earnings.items()}
        return self.notify_changed()

    def set_phase_override(self, ticker: str, phase: PhaseOverride) -> DerivedView:
        """
        Pin a ticker to a wheel phase.

        Raises:
            ValueError: If phase does not name a wheel phase
        """
        self._overrides[ticker.upper()] = WheelPhase.parse(phase)
        return self.notify_changed()

    def clear_phase_override(self, ticker: str) -> DerivedView:
        """Return a ticker to its derived phase."""
        self._overrides.pop(ticker.upper(), None)
        return self.notify_changed()

    def recompute(self) -> DerivedView:
        """Derive a fresh view from the current inputs without notifying."""
        self._view = derive_view(
            self.event_source(),
            marks=self._marks,
            earnings=self._earnings,
            overrides=self._overrides,
            as_of=self._as_of(),
            config=self.config,
            engine=self.engine,
        )
        return self._view

    def notify_changed(self) -> DerivedView:
        """
        Recompute the view and push it to every subscriber.

        A subscriber that raises is logged; the remaining subscribers are
        still called.
        """
        view = self.recompute()
        for subscription in list(self._subscriptions):
            try:
                subscription.callback(view)
            except Exception:
                logger.error("Subscriber failed while handling a view update", exc_info=True)
        return view

    def current_view(self) -> DerivedView:
        """Last computed view, computed on first use."""
        if self._view is None:
            return self.recompute()
        return self._view
