from enum import Enum, auto
from typing import Callable, Dict, Any, Optional
import threading
import uuid
import weakref
import inspect
import logging

logger = logging.getLogger(__name__)


class AppEvent(Enum):
    """Events emitted by the store and the services."""
    ENTRY_CREATED = auto()
    ENTRY_UPDATED = auto()
    ENTRY_DELETED = auto()
    BULK_STARTED = auto()
    BULK_PROGRESS = auto()
    BULK_FINISHED = auto()
    IDS_REPAIRED = auto()
    TIMER_STARTED = auto()
    TIMER_STOPPED = auto()
    TIMER_BREAK_STARTED = auto()
    TIMER_BREAK_ENDED = auto()
    PROJECT_CREATED = auto()
    PROJECT_UPDATED = auto()
    PROJECT_DELETED = auto()
    SETTINGS_CHANGED = auto()
    COLLECTION_CHANGED = auto()


class Subscription:
    """Handle returned by ``EventBus.subscribe``.

    With strong=True the handle owns the callback; keep it alive and call
    unsubscribe() when done.
    """

    def __init__(
        self,
        event_bus: "EventBus",
        event: AppEvent,
        subscription_id: str,
        strong_ref: Optional[Callable[[Any], None]] = None,
    ):
        self._event_bus = event_bus
        self._event = event
        self._subscription_id = subscription_id
        self._active = True
        self._strong_ref = strong_ref

    @property
    def id(self) -> str:
        return self._subscription_id

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if self._active:
            self._event_bus._unsubscribe_by_id(self._event, self._subscription_id)
            self._active = False
            self._strong_ref = None


class _CallbackRef:
    """Weak reference to a bound method or function, strong for builtins."""

    def __init__(
        self,
        callback: Callable[[Any], None],
        on_dead: Optional[Callable[[], None]] = None,
        event_name: str = "unknown",
    ):
        self._on_dead = on_dead
        self._event_name = event_name
        self._callback_repr = repr(callback)

        if inspect.ismethod(callback):
            self._ref = weakref.WeakMethod(callback, self._invoke_on_dead)
        else:
            try:
                self._ref = weakref.ref(callback, self._invoke_on_dead)
            except TypeError:
                self._ref = lambda: callback

    def _invoke_on_dead(self, _ref) -> None:
        logger.debug(
            f"EventBus: subscriber to {self._event_name} was garbage collected "
            f"({self._callback_repr})"
        )
        if self._on_dead:
            self._on_dead()

    def __call__(self) -> Optional[Callable[[Any], None]]:
        return self._ref()


class EventBus:
    """Singleton event bus decoupling the store from its listeners.

    Callbacks are held weakly unless they are lambdas/closures or
    strong=True is passed, in which case the Subscription keeps them alive.
    """
    _instance: Optional["EventBus"] = None
    _instance_lock = threading.Lock()

    def __new__(cls) -> "EventBus":
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._listeners: Dict[AppEvent, Dict[str, _CallbackRef]] = {}
        return cls._instance

    def subscribe(
        self,
        event: AppEvent,
        callback: Callable[[Any], None],
        strong: bool = False,
    ) -> Subscription:
        """Subscribe a callback to an event. Returns a Subscription for cleanup."""
        if event not in self._listeners:
            self._listeners[event] = {}

        subscription_id = str(uuid.uuid4())

        is_lambda = getattr(callback, "__name__", "") == "<lambda>"
        is_closure = not inspect.ismethod(callback) and getattr(callback, "__closure__", None) is not None
        if (is_lambda or is_closure) and not strong:
            strong = True

        def on_dead():
            if event in self._listeners and subscription_id in self._listeners[event]:
                del self._listeners[event][subscription_id]

        self._listeners[event][subscription_id] = _CallbackRef(callback, on_dead, event.name)

        return Subscription(
            self, event, subscription_id,
            strong_ref=callback if strong else None
        )

    def _unsubscribe_by_id(self, event: AppEvent, subscription_id: str) -> None:
        if event in self._listeners and subscription_id in self._listeners[event]:
            del self._listeners[event][subscription_id]

    def emit(self, event: AppEvent, data: Any = None) -> None:
        """Emit an event to all subscribers.

        A failing handler is logged and skipped; it never reaches the emitter.
        """
        if event not in self._listeners:
            return
        dead_refs = []
        for sub_id, cb_ref in list(self._listeners[event].items()):
            callback = cb_ref()
            if callback is None:
                dead_refs.append(sub_id)
                continue
            try:
                callback(data)
            except Exception:
                logger.exception(f"Error in event handler for {event.name}")

        for sub_id in dead_refs:
            self._listeners[event].pop(sub_id, None)

    def clear(self) -> None:
        """Clear all event subscriptions. Used primarily for testing."""
        self._listeners.clear()

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance. Used primarily for testing."""
        if cls._instance is not None:
            cls._instance._listeners.clear()
            cls._instance = None


event_bus = EventBus()
