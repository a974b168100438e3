"""Carousel windowing logic - platform agnostic.

The infinite carousel shows ``per_view`` consecutive items out of a circular
list. To make the wrap invisible the items are laid out on a *loop track*:

    head buffer | safe list | tail buffer
    safe[-2p:]  | safe      | safe[:2p]

where the *safe list* is the caller's items repeated (whole copies) until it
is long enough to buffer. The cursor starts on the first safe item and moves
one slot per step. After each transition settles, a cursor that drifted into
a buffer is moved by exactly ``len(safe)`` slots without animation; the slots
on screen are identical before and after, so the jump cannot be seen.

Everything here is pure and synchronous. Scheduling, input events and
rendering live in ``src.core.carousel_engine``.
"""

from dataclasses import dataclass, field
from os import getenv
from typing import Generic, TypeVar

T = TypeVar("T")

# (min viewport width, items per view), checked widest first
DEFAULT_BREAKPOINTS: tuple[tuple[int, int], ...] = ((1024, 3), (768, 2))
MIN_PER_VIEW = 1
MAX_PER_VIEW = 3
# Used when no viewport width is known (server-side rendering)
FALLBACK_PER_VIEW = 3

MIN_SAFE_LENGTH = 6

TOUCH_SWIPE_THRESHOLD = 60
POINTER_DRAG_THRESHOLD = 80


def _env_bool(name: str, default: bool) -> bool:
    value = getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = getenv(name)
    if value is None or not value.strip():
        return default
    return int(value)


@dataclass(frozen=True)
class CarouselConfig:
    """Carousel behaviour settings.

    Attributes:
        autoplay: Advance automatically while not paused.
        autoplay_interval_ms: Delay between automatic steps.
        transition_ms: Duration of the slide animation.
        show_arrows: Render previous/next controls when navigation is possible.
        touch_threshold: Swipe distance needed to change slide.
        drag_threshold: Mouse drag distance needed to change slide.
        breakpoints: (min width, per view) pairs, widest first.
    """

    autoplay: bool = True
    autoplay_interval_ms: int = 2500
    transition_ms: int = 700
    show_arrows: bool = True
    touch_threshold: int = TOUCH_SWIPE_THRESHOLD
    drag_threshold: int = POINTER_DRAG_THRESHOLD
    breakpoints: tuple[tuple[int, int], ...] = DEFAULT_BREAKPOINTS

    def __post_init__(self) -> None:
        if self.autoplay_interval_ms <= 0:
            raise ValueError(
                f"autoplay_interval_ms must be positive, got {self.autoplay_interval_ms}"
            )
        if self.transition_ms <= 0:
            raise ValueError(f"transition_ms must be positive, got {self.transition_ms}")
        if self.touch_threshold < 0 or self.drag_threshold < 0:
            raise ValueError("gesture thresholds cannot be negative")

    @classmethod
    def from_env(cls) -> "CarouselConfig":
        """Build a config from CAROUSEL_* environment variables."""
        return cls(
            autoplay=_env_bool("CAROUSEL_AUTOPLAY", True),
            autoplay_interval_ms=_env_int("CAROUSEL_AUTOPLAY_MS", 2500),
            transition_ms=_env_int("CAROUSEL_TRANSITION_MS", 700),
            show_arrows=_env_bool("CAROUSEL_SHOW_ARROWS", True),
            touch_threshold=_env_int("CAROUSEL_TOUCH_THRESHOLD", TOUCH_SWIPE_THRESHOLD),
            drag_threshold=_env_int("CAROUSEL_DRAG_THRESHOLD", POINTER_DRAG_THRESHOLD),
        )


def per_view_for_width(
    width: float | None,
    breakpoints: tuple[tuple[int, int], ...] = DEFAULT_BREAKPOINTS,
) -> int:
    """Number of slots visible at a viewport width, clamped to 1..3."""
    if width is None:
        return FALLBACK_PER_VIEW
    per_view = MIN_PER_VIEW
    for min_width, count in breakpoints:
        if width >= min_width:
            per_view = count
            break
    return max(MIN_PER_VIEW, min(MAX_PER_VIEW, per_view))


def min_safe_length(per_view: int) -> int:
    return max(per_view + 2, MIN_SAFE_LENGTH)


def build_safe_items(items: list[T], per_view: int) -> list[T]:
    """Repeat whole copies of ``items`` until the list can be buffered.

    The result length is a multiple of ``len(items)`` and at least
    ``max(per_view + 2, 6)``. An empty input stays empty.
    """
    if not items:
        return []
    minimum = min_safe_length(per_view)
    copies = -(-minimum // len(items))
    return list(items) * copies


def build_loop_track(safe_items: list[T], per_view: int) -> list[T]:
    """Surround the safe list with ``2 * per_view`` buffer slots on each side."""
    if not safe_items:
        return []
    buffer = per_view * 2
    head = safe_items[-buffer:]
    tail = safe_items[:buffer]
    return [*head, *safe_items, *tail]


def start_index(safe_items: list[T], per_view: int) -> int:
    """Track position of the first safe item, right after the head buffer."""
    if not safe_items:
        return 0
    return per_view * 2


def teleport_target(index: int, total: int, per_view: int) -> int | None:
    """Equivalent in-range index after a transition, or None if none is needed.

    The left limit is ``per_view`` while the head buffer is ``2 * per_view``
    wide, so backwards wraps fire one page before the buffer edge. Changing
    either limit changes wrap timing.

    Only valid for ``total >= 2 * per_view``; ``build_safe_items`` guarantees
    that for every supported per_view.
    """
    if total <= 0:
        return None
    left_limit = per_view
    right_limit = per_view * 2 + total
    if index <= left_limit:
        return index + total
    if index >= right_limit:
        return index - total
    return None


def offset_percent(index: int, per_view: int) -> float:
    """Horizontal translation of the track, in percent of the viewport."""
    return index * (100 / per_view)


@dataclass
class CarouselState(Generic[T]):
    """Window state for one carousel instance.

    Attributes:
        items: Caller-owned items, in display order.
        per_view: Slots visible at once.
        safe_items: Replicated items, long enough to buffer.
        track: Loop track (head buffer, safe items, tail buffer).
        index: Cursor into ``track``; leftmost visible slot.
        animating: Whether the next index change is animated.
    """

    items: list[T]
    per_view: int = FALLBACK_PER_VIEW
    safe_items: list[T] = field(default_factory=list)
    track: list[T] = field(default_factory=list)
    index: int = 0
    animating: bool = True

    @classmethod
    def build(cls, items: list[T], per_view: int) -> "CarouselState[T]":
        """Fresh state for ``items`` at ``per_view``, cursor at the start.

        Animation starts disabled so the first frame does not slide in.
        """
        safe = build_safe_items(items, per_view)
        return cls(
            items=list(items),
            per_view=per_view,
            safe_items=safe,
            track=build_loop_track(safe, per_view),
            index=start_index(safe, per_view),
            animating=False,
        )

    @property
    def total(self) -> int:
        return len(self.safe_items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def can_navigate(self) -> bool:
        return self.total > 1

    @property
    def visible_items(self) -> list[T]:
        return self.track[self.index : self.index + self.per_view]

    @property
    def offset_percent(self) -> float:
        return offset_percent(self.index, self.per_view)


class CarouselController(Generic[T]):
    """Navigation rules applied to a CarouselState in place."""

    def advance(self, state: CarouselState[T], direction: int) -> bool:
        """Move the cursor one slot. Returns False when navigation is impossible."""
        if not state.can_navigate or direction == 0:
            return False
        state.index += 1 if direction > 0 else -1
        return True

    def settle(self, state: CarouselState[T]) -> bool:
        """Teleport after a finished transition. Returns True if the cursor moved.

        The teleport itself is never animated; the caller re-enables
        animation on the next scheduling tick.
        """
        if state.is_empty:
            return False
        target = teleport_target(state.index, state.total, state.per_view)
        if target is None:
            return False
        state.animating = False
        state.index = target
        return True


@dataclass
class GestureTracker:
    """Start coordinate and running delta of one drag or swipe.

    ``start`` begins a gesture, ``move`` updates the delta and ``end``
    resolves it to a navigation direction and clears the state.
    """

    start_x: float | None = None
    delta_x: float = 0.0

    @property
    def active(self) -> bool:
        return self.start_x is not None

    def start(self, x: float) -> None:
        self.start_x = x
        self.delta_x = 0.0

    def move(self, x: float) -> None:
        if self.start_x is None:
            return
        self.delta_x = x - self.start_x

    def end(self, threshold: float) -> int:
        """Direction for the finished gesture: -1 previous, +1 next, 0 none.

        Moving right (positive delta) pulls the previous slot into view.
        """
        if self.start_x is None:
            return 0
        delta = self.delta_x
        self.start_x = None
        self.delta_x = 0.0
        if delta > threshold:
            return -1
        if delta < -threshold:
            return 1
        return 0
