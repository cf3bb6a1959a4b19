"""
agenda/client/guards.py

Access guards: decide per protected region whether to show a loading
indicator, a denial, or the protected content.

    guard = FeatureGuard(session.resolver, "financial", children=page)
    guard.mount(on_change=redraw)
    outcome = guard.render()   # Loading() | Denied(...) | Granted(page)
    ...
    guard.unmount()

Lifecycle is Loading -> Granted or Loading -> Denied. A guard never goes
back to Loading on its own; that only happens when the resolver's entry
expires or is invalidated and refetched.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Union
import logging

from agenda.client.plans import PlanAccessResolver, PlanSnapshot
from agenda.client.query_cache import Subscription
from agenda.models.plan import LimitInfo

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = (
    "Your plan does not include access to this feature. Contact us to upgrade."
)
PROFESSIONAL_LIMIT_MESSAGE = (
    "Professional limit reached ({current}/{limit}). "
    "Upgrade your plan to add more professionals."
)
PROFESSIONAL_LIMIT_UNKNOWN_MESSAGE = (
    "Professional limit reached. Upgrade your plan to add more professionals."
)


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Denied:
    reason: str
    fallback: Any = None
    limit_info: Optional[LimitInfo] = None

    @property
    def content(self) -> Any:
        """What to display: the caller's fallback, else the fixed message."""
        return self.fallback if self.fallback is not None else self.reason


@dataclass(frozen=True)
class Granted:
    children: Any


Rendered = Union[Loading, Denied, Granted]


class AccessGuard:
    """Base guard; subclasses implement decide() for a resolved snapshot."""

    def __init__(self, resolver: PlanAccessResolver, children: Any = None, fallback: Any = None):
        self._resolver = resolver
        self.children = children
        self.fallback = fallback
        self._subscription: Optional[Subscription] = None
        self._on_change: Optional[Callable[[Rendered], None]] = None

    @property
    def mounted(self) -> bool:
        return self._subscription is not None

    def decide(self, snapshot: PlanSnapshot) -> Rendered:
        raise NotImplementedError

    def render_snapshot(self, snapshot: PlanSnapshot) -> Rendered:
        if snapshot.is_loading:
            return Loading()
        return self.decide(snapshot)

    def render(self) -> Rendered:
        return self.render_snapshot(self._resolver.snapshot)

    def mount(self, on_change: Optional[Callable[[Rendered], None]] = None) -> None:
        """Subscribe to plan changes and start resolving the plan if needed."""
        if self._subscription is not None:
            raise RuntimeError(f"{type(self).__name__} is already mounted")
        self._on_change = on_change
        self._subscription = self._resolver.subscribe(self._handle_snapshot)
        self._resolver.prefetch()

    def unmount(self) -> None:
        """Stop receiving plan changes; on_change is never called afterwards."""
        subscription, self._subscription = self._subscription, None
        self._on_change = None
        if subscription is not None:
            subscription.unsubscribe()

    def _handle_snapshot(self, snapshot: PlanSnapshot) -> None:
        on_change = self._on_change
        if self._subscription is None or on_change is None:
            return
        on_change(self.render_snapshot(snapshot))


class FeatureGuard(AccessGuard):
    """Shows children only when the plan includes `feature`."""

    def __init__(self, resolver: PlanAccessResolver, feature: str, children: Any = None, fallback: Any = None):
        super().__init__(resolver, children, fallback)
        self.feature = feature

    def decide(self, snapshot: PlanSnapshot) -> Rendered:
        if snapshot.has_permission(self.feature):
            return Granted(self.children)
        return Denied(reason=PERMISSION_DENIED_MESSAGE, fallback=self.fallback)


class HeadcountLimitGuard(AccessGuard):
    """Shows children only while another professional fits in the plan."""

    def decide(self, snapshot: PlanSnapshot) -> Rendered:
        if snapshot.can_add_professional():
            return Granted(self.children)
        limit_info = snapshot.get_limit_info()
        if limit_info is None:
            reason = PROFESSIONAL_LIMIT_UNKNOWN_MESSAGE
        else:
            reason = PROFESSIONAL_LIMIT_MESSAGE.format(current=limit_info.current, limit=limit_info.limit)
        return Denied(reason=reason, fallback=self.fallback, limit_info=limit_info)


@dataclass(frozen=True)
class PermissionGuardResult:
    has_access: bool
    is_loading: bool
    denied_message: str = PERMISSION_DENIED_MESSAGE


def permission_guard(resolver: PlanAccessResolver, feature: str) -> PermissionGuardResult:
    """Route-level access check without rendering."""
    snapshot = resolver.snapshot
    return PermissionGuardResult(
        has_access=snapshot.has_permission(feature),
        is_loading=snapshot.is_loading,
    )
