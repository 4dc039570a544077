"""
Client notification agent: the service-worker side of reminder pushes.

Mirrors the browser contract so the routing and window-reuse rules can run
(and be tested) outside a browser:

  * `on_push` turns a push message into a system notification;
  * `on_notification_click` closes it and brings the app to the route for its type,
    focusing an already-open window on that route instead of opening another;
  * `on_notification_close` / `expire_ignored` record the other two endings.

Handlers never await directly. They hand their async work to `event.wait_until(...)`
and the host keeps the handler alive until `event.settle()` has finished it.

Per-notification lifecycle (keyed by tag):

    IDLE -> NOTIFICATION_SHOWN -> CLICKED | DISMISSED | TIMED_OUT_IGNORED
"""
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union
from urllib.parse import urlsplit

from app.exceptions import PayloadParseError

logger = logging.getLogger(__name__)

DEFAULT_ROUTE = "/"
ROUTES = {
    "meal_reminder": "/log-food/manual",
    "water_reminder": "/log-food/manual?type=water",
    "weigh_in_reminder": "/progress",
    "reminder_confirmation": "/reminders",
}

# Notification action buttons
ACTION_LOG_MEAL = "log_meal"
ACTION_DISMISS = "dismiss"
LOG_MEAL_TYPES = ("meal_reminder", "water_reminder")

DEFAULT_TITLE = "Calorie Tracker Reminder"
DEFAULT_BODY = "Time to log your meals!"
DEFAULT_TYPE = "general"
DEFAULT_ICON = "/favicon/android-chrome-192x192.png"
BADGE_ICON = "/favicon/favicon-32x32.png"


class AgentState(str, Enum):
    IDLE = "idle"
    NOTIFICATION_SHOWN = "notification_shown"
    CLICKED = "clicked"
    DISMISSED = "dismissed"
    TIMED_OUT_IGNORED = "timed_out_ignored"


def route_for(notification_type: Optional[str]) -> str:
    return ROUTES.get(notification_type or "", DEFAULT_ROUTE)


def actions_for(notification_type: Optional[str]) -> List[Dict[str, str]]:
    actions = []
    if notification_type in LOG_MEAL_TYPES:
        actions.append({"action": ACTION_LOG_MEAL, "title": "Log Meal"})
    actions.append({"action": ACTION_DISMISS, "title": "Dismiss"})
    return actions


def tag_for(notification_type: str) -> str:
    # One visible notification per category; a repeat replaces it
    return f"reminder-{notification_type}"


@dataclass
class PushMessage:
    title: str
    body: str
    type: str = DEFAULT_TYPE
    icon: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


GENERIC_MESSAGE = PushMessage(title=DEFAULT_TITLE, body=DEFAULT_BODY)


def parse_push_data(raw: Union[bytes, str]) -> PushMessage:
    """Parse a push body `{title, body, type, icon?, data?}`. Raises PayloadParseError."""
    try:
        text = raw.decode("utf-8") if isinstance(raw, bytes) else raw
        document = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise PayloadParseError(f"Push body is not JSON: {e}") from e

    if not isinstance(document, dict):
        raise PayloadParseError(f"Push body must be a JSON object, got {type(document).__name__}")

    title = document.get("title", DEFAULT_TITLE)
    body = document.get("body", DEFAULT_BODY)
    message_type = document.get("type") or DEFAULT_TYPE
    if not all(isinstance(value, str) for value in (title, body, message_type)):
        raise PayloadParseError("title, body and type must be strings")

    icon = document.get("icon")
    data = document.get("data")
    return PushMessage(
        title=title,
        body=body,
        type=message_type,
        icon=icon if isinstance(icon, str) else None,
        data=data if isinstance(data, dict) else {},
    )


@dataclass
class Notification:
    title: str
    body: str
    tag: str
    icon: str = DEFAULT_ICON
    badge: str = BADGE_ICON
    data: Dict[str, Any] = field(default_factory=dict)
    actions: List[Dict[str, str]] = field(default_factory=list)
    closed: bool = False

    def close(self) -> None:
        self.closed = True


class WindowClient(Protocol):
    url: str

    async def focus(self) -> Any: ...


class ClientHost(Protocol):
    """What the agent needs from the browser: the notification surface and the window list."""

    async def show_notification(self, notification: Notification) -> None: ...

    async def match_windows(self) -> List[WindowClient]: ...

    async def open_window(self, url: str) -> Optional[WindowClient]: ...


class ExtendableEvent:
    """An event whose handler may only finish once the work passed to wait_until is done."""

    def __init__(self):
        self._pending: List[Awaitable] = []

    def wait_until(self, work: Awaitable) -> None:
        self._pending.append(work)

    async def settle(self) -> List[Any]:
        results = []
        while self._pending:
            results.append(await self._pending.pop(0))
        return results


class PushEvent(ExtendableEvent):
    def __init__(self, data: Union[bytes, str, None] = None):
        super().__init__()
        self.data = data


class NotificationEvent(ExtendableEvent):
    def __init__(self, notification: Notification, action: str = ""):
        super().__init__()
        self.notification = notification
        self.action = action


def shows_route(window_url: str, target: str) -> bool:
    """True if the window is on the target path with the same query string."""
    window = urlsplit(window_url)
    wanted = urlsplit(target)
    window_path = window.path.rstrip("/") or "/"
    wanted_path = wanted.path.rstrip("/") or "/"
    return window_path == wanted_path and window.query == wanted.query


class NotificationAgent:
    def __init__(
        self,
        host: ClientHost,
        ignore_after_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.host = host
        self.ignore_after_seconds = ignore_after_seconds
        self.clock = clock
        self._states: Dict[str, AgentState] = {}
        self._shown_at: Dict[str, float] = {}

    def state_of(self, tag: str) -> AgentState:
        return self._states.get(tag, AgentState.IDLE)

    # --- push received ---
    def on_push(self, event: PushEvent) -> None:
        if not event.data:
            logger.debug("Push event without data ignored")
            return

        try:
            message = parse_push_data(event.data)
        except PayloadParseError as e:
            logger.warning(f"Malformed push payload, showing generic notification: {e}")
            message = GENERIC_MESSAGE

        target = route_for(message.type)
        notification = Notification(
            title=message.title,
            body=message.body,
            tag=tag_for(message.type),
            icon=message.icon or DEFAULT_ICON,
            data={**message.data, "type": message.type, "url": target},
            actions=actions_for(message.type),
        )
        event.wait_until(self._show(notification))

    async def _show(self, notification: Notification) -> Notification:
        await self.host.show_notification(notification)
        self._states[notification.tag] = AgentState.NOTIFICATION_SHOWN
        self._shown_at[notification.tag] = self.clock()
        return notification

    # --- notification interaction ---
    def on_notification_click(self, event: NotificationEvent) -> None:
        notification = event.notification
        notification.close()

        if event.action == ACTION_DISMISS:
            self._finish(notification.tag, AgentState.DISMISSED)
            return

        if event.action == ACTION_LOG_MEAL:
            target = ROUTES["meal_reminder"]
        else:
            # Re-derive from the type so only routes in the table are ever opened
            target = route_for(notification.data.get("type"))

        self._finish(notification.tag, AgentState.CLICKED)
        event.wait_until(self.navigate(target))

    def on_notification_close(self, event: NotificationEvent) -> None:
        if self.state_of(event.notification.tag) == AgentState.NOTIFICATION_SHOWN:
            self._finish(event.notification.tag, AgentState.DISMISSED)

    def expire_ignored(self) -> List[str]:
        """Mark notifications nobody touched within the ignore window. Returns their tags."""
        now = self.clock()
        expired = [
            tag for tag, shown_at in self._shown_at.items()
            if self.state_of(tag) == AgentState.NOTIFICATION_SHOWN
            and now - shown_at >= self.ignore_after_seconds
        ]
        for tag in expired:
            self._finish(tag, AgentState.TIMED_OUT_IGNORED)
        return expired

    async def navigate(self, target: str) -> Optional[WindowClient]:
        """Focus a window already on `target`, otherwise open one there."""
        for window in await self.host.match_windows():
            if shows_route(window.url, target):
                await window.focus()
                return window
        return await self.host.open_window(target)

    def _finish(self, tag: str, state: AgentState) -> None:
        self._states[tag] = state
        self._shown_at.pop(tag, None)
