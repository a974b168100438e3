"""Infinite carousel engine driven by an asyncio event loop.

The engine owns one carousel's window state, autoplay timer, gesture state and
the deferred re-enable of animation after a rebuild or teleport. A rendering
surface feeds it input events and transition-completion notifications and
draws the frames it returns from ``render()``.

Example:
    viewport = Viewport(width=1280)
    engine = CarouselEngine(projects, render_card, viewport)

    async with engine:
        frame = engine.render()
        ...
        engine.on_transition_end()  # surface finished animating
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from src.core.carousel_logic import (
    CarouselConfig,
    CarouselController,
    CarouselState,
    GestureTracker,
    per_view_for_width,
)
from src.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ResizeListener = Callable[[float | None], None]


class Viewport:
    """Viewport width with resize subscriptions."""

    def __init__(self, width: float | None = None) -> None:
        self._width = width
        self._listeners: list[ResizeListener] = []

    @property
    def width(self) -> float | None:
        return self._width

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ResizeListener) -> Callable[[], None]:
        """Register a resize listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def resize(self, width: float | None) -> None:
        self._width = width
        for listener in list(self._listeners):
            listener(width)


@dataclass
class Slot(Generic[T]):
    """One rendered position on the loop track."""

    index: int
    item: T
    content: Any


@dataclass
class CarouselFrame(Generic[T]):
    """Everything a rendering surface needs to draw the carousel.

    Attributes:
        per_view: Slots visible at once; each slot is ``100 / per_view`` wide.
        offset_percent: Horizontal translation of the track.
        transition_ms: Animation duration for this frame, 0 for a jump.
        show_arrows: Whether previous/next controls are drawn.
        slots: Rendered loop track, buffers included.
    """

    per_view: int
    offset_percent: float
    transition_ms: int
    show_arrows: bool
    slots: list[Slot[T]]

    @property
    def slot_width_percent(self) -> float:
        return 100 / self.per_view


class CarouselEngine(Generic[T]):
    """Windowing, autoplay and gesture handling for one carousel.

    All mutation happens inside event handlers on the owning event loop.
    ``mount`` must be called from a running loop; ``unmount`` cancels the
    autoplay task, any pending animation re-enable and the resize listener.
    """

    def __init__(
        self,
        items: list[T],
        render_item: Callable[[T, int], Any],
        viewport: Viewport,
        config: CarouselConfig | None = None,
    ) -> None:
        self._render_item = render_item
        self._viewport = viewport
        self._config = config or CarouselConfig()
        self._controller: CarouselController[T] = CarouselController()
        self._state: CarouselState[T] = CarouselState.build(
            items, per_view_for_width(viewport.width, self._config.breakpoints)
        )
        self._gesture = GestureTracker()
        self._hovered = False
        self._paused = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._autoplay_task: asyncio.Task[None] | None = None
        self._stopped_tasks: set[asyncio.Task[None]] = set()
        self._pending_frame: asyncio.Handle | None = None
        self._unsubscribe_resize: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def mounted(self) -> bool:
        return self._loop is not None

    def mount(self) -> None:
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._unsubscribe_resize = self._viewport.subscribe(self._on_resize)
        self._rebuild(self._state.items, self._current_per_view())
        logger.debug(
            "carousel_mounted",
            items=len(self._state.items),
            per_view=self._state.per_view,
        )

    def unmount(self) -> None:
        if self._loop is None:
            return
        self._stop_autoplay()
        self._cancel_pending_frame()
        if self._unsubscribe_resize is not None:
            self._unsubscribe_resize()
            self._unsubscribe_resize = None
        self._gesture = GestureTracker()
        self._loop = None
        logger.debug("carousel_unmounted")

    async def __aenter__(self) -> "CarouselEngine[T]":
        self.mount()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.unmount()
        # Cancelled autoplay tasks finish before the block is left
        if self._stopped_tasks:
            await asyncio.wait(self._stopped_tasks)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def config(self) -> CarouselConfig:
        return self._config

    @property
    def state(self) -> CarouselState[T]:
        return self._state

    @property
    def per_view(self) -> int:
        return self._state.per_view

    @property
    def index(self) -> int:
        return self._state.index

    @property
    def safe_items(self) -> list[T]:
        return self._state.safe_items

    @property
    def track(self) -> list[T]:
        return self._state.track

    @property
    def animating(self) -> bool:
        return self._state.animating

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def dragging(self) -> bool:
        return self._gesture.active

    @property
    def autoplay_running(self) -> bool:
        return self._autoplay_task is not None and not self._autoplay_task.done()

    @property
    def can_navigate(self) -> bool:
        return self._state.can_navigate

    def visible_items(self) -> list[T]:
        return self._state.visible_items

    def render(self) -> CarouselFrame[T] | None:
        """Current frame, or None when there is nothing to show."""
        state = self._state
        if state.is_empty:
            return None
        return CarouselFrame(
            per_view=state.per_view,
            offset_percent=state.offset_percent,
            transition_ms=self._config.transition_ms if state.animating else 0,
            show_arrows=self._config.show_arrows and state.can_navigate,
            slots=[
                Slot(index=i, item=item, content=self._render_item(item, i))
                for i, item in enumerate(state.track)
            ],
        )

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def set_items(self, items: list[T]) -> None:
        self._rebuild(items, self._state.per_view)

    def set_config(self, config: CarouselConfig) -> None:
        """Swap settings; the autoplay timer is recreated with the new values."""
        per_view_changed = config.breakpoints != self._config.breakpoints
        self._config = config
        if per_view_changed:
            new_per_view = self._current_per_view()
            if new_per_view != self._state.per_view:
                self._rebuild(self._state.items, new_per_view)
                return
        self._restart_autoplay()

    def advance(self, direction: int) -> None:
        if self._controller.advance(self._state, direction):
            logger.debug("carousel_advanced", direction=direction, index=self._state.index)

    def next(self) -> None:
        self.advance(1)

    def prev(self) -> None:
        self.advance(-1)

    def on_transition_end(self) -> None:
        """Teleport back into the safe region once the slide has settled."""
        before = self._state.index
        if self._controller.settle(self._state):
            logger.debug("carousel_teleported", from_index=before, to_index=self._state.index)
            self._schedule_animation_enable()

    def pointer_enter(self) -> None:
        self._hovered = True
        self._set_paused(True)

    def pointer_leave(self) -> None:
        self._hovered = False
        if self._gesture.active:
            self.mouse_up()
        self._set_paused(False)

    def touch_start(self, x: float) -> None:
        self._gesture_start(x)

    def touch_move(self, x: float) -> None:
        self._gesture.move(x)

    def touch_end(self) -> None:
        self._gesture_end(self._config.touch_threshold)

    def mouse_down(self, x: float) -> None:
        self._gesture_start(x)

    def mouse_move(self, x: float) -> None:
        self._gesture.move(x)

    def mouse_up(self) -> None:
        self._gesture_end(self._config.drag_threshold)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _current_per_view(self) -> int:
        return per_view_for_width(self._viewport.width, self._config.breakpoints)

    def _on_resize(self, width: float | None) -> None:
        per_view = per_view_for_width(width, self._config.breakpoints)
        if per_view != self._state.per_view:
            logger.info(
                "carousel_breakpoint_changed",
                width=width,
                old_per_view=self._state.per_view,
                new_per_view=per_view,
            )
            self._rebuild(self._state.items, per_view)

    def _rebuild(self, items: list[T], per_view: int) -> None:
        # Buffers depend on per_view, so nothing from the old state is reused
        self._state = CarouselState.build(items, per_view)
        self._cancel_pending_frame()
        if self._state.is_empty:
            self._stop_autoplay()
            return
        self._schedule_animation_enable()
        self._restart_autoplay()
        logger.debug(
            "carousel_rebuilt",
            per_view=per_view,
            total=self._state.total,
            track_length=len(self._state.track),
        )

    def _gesture_start(self, x: float) -> None:
        if not self._state.can_navigate:
            return
        self._gesture.start(x)
        self._set_paused(True)

    def _gesture_end(self, threshold: int) -> None:
        if not self._gesture.active:
            return
        direction = self._gesture.end(threshold)
        if direction:
            self.advance(direction)
        self._set_paused(False)

    def _set_paused(self, paused: bool) -> None:
        if paused == self._paused:
            return
        self._paused = paused
        self._restart_autoplay()

    def _schedule_animation_enable(self) -> None:
        if self._loop is None:
            return
        self._cancel_pending_frame()
        self._pending_frame = self._loop.call_soon(self._enable_animation)

    def _enable_animation(self) -> None:
        self._pending_frame = None
        self._state.animating = True

    def _cancel_pending_frame(self) -> None:
        if self._pending_frame is not None:
            self._pending_frame.cancel()
            self._pending_frame = None

    def _restart_autoplay(self) -> None:
        self._stop_autoplay()
        if self._loop is None:
            return
        if not self._config.autoplay or self._paused or not self._state.can_navigate:
            return
        self._autoplay_task = self._loop.create_task(self._autoplay())

    def _stop_autoplay(self) -> None:
        if self._autoplay_task is not None:
            task, self._autoplay_task = self._autoplay_task, None
            task.cancel()
            self._stopped_tasks.add(task)
            task.add_done_callback(self._stopped_tasks.discard)

    async def _autoplay(self) -> None:
        interval = self._config.autoplay_interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            self.advance(1)
