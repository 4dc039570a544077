"""
Reminder tick: evaluate every user's reminder rule for one minute and fan the
resulting notification out to each of that user's push endpoints.

Failure scopes:
  * the rule query failing aborts the tick (UpstreamQueryError);
  * one user's endpoint lookup failing, or a user having no endpoints, skips that user;
  * one endpoint's push failing is recorded in its DeliveryOutcome and nothing else.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Protocol, Tuple

import pytz
from sqlalchemy.orm import Session

from app.exceptions import DeliveryError, DeliveryErrorKind, UpstreamQueryError
from app.schemas.notifications import DeliveryOutcome, NotificationPayload, PushEndpoint
from app.schemas.reminders import ReminderRule
from app.services.notification_config import NotificationConfig
from app.services.push_transport import PushTransport
from app.services.reminder_evaluator import evaluate

logger = logging.getLogger(__name__)

# A failed push is final for the tick; the next scheduled tick is the only retry.
RETRY_POLICY = "none"


class ReminderRuleStore(Protocol):
    def list_all_reminder_rules(self) -> List[ReminderRule]: ...


class EndpointRegistry(Protocol):
    def list_endpoints(self, user_id: int) -> List[PushEndpoint]: ...


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


class ReminderDispatcher:
    def __init__(
        self,
        rule_store: ReminderRuleStore,
        endpoint_registry: EndpointRegistry,
        transport: PushTransport,
        notification_config: NotificationConfig,
        on_endpoint_gone: Optional[Callable[[DeliveryOutcome], None]] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.rule_store = rule_store
        self.endpoint_registry = endpoint_registry
        self.transport = transport
        self.config = notification_config
        self.on_endpoint_gone = on_endpoint_gone
        self.clock = clock

    def run_tick(self, instant: Optional[datetime] = None) -> List[DeliveryOutcome]:
        instant = instant or self.clock()

        try:
            rules = self.rule_store.list_all_reminder_rules()
        except UpstreamQueryError:
            raise
        except Exception as e:
            raise UpstreamQueryError(f"Could not load reminder rules: {e}") from e

        tz = self.config.timezone
        jobs: List[Tuple[PushEndpoint, NotificationPayload]] = []
        notified_users = 0

        for rule in rules:
            payload = evaluate(rule, instant, tz)
            if payload is None:
                continue

            endpoints = self._endpoints_for(rule.user_id)
            if not endpoints:
                logger.info(f"No push subscriptions for user {rule.user_id}. Skipping {payload.type.value}.")
                continue

            notified_users += 1
            jobs.extend((endpoint, payload) for endpoint in endpoints)

        outcomes = self._fan_out(jobs)
        self._handle_gone_endpoints(outcomes)

        sent = sum(1 for o in outcomes if o.succeeded)
        logger.info(
            f"Reminder tick {instant.isoformat()} ran. Evaluated {len(rules)} users, "
            f"notified {notified_users}. Sent: {sent}, Failed: {len(outcomes) - sent}"
        )
        return outcomes

    def send_to_user(self, user_id: int, payload: NotificationPayload) -> List[DeliveryOutcome]:
        """Fan a one-off notification (confirmation, test) out to all of a user's endpoints."""
        try:
            endpoints = self.endpoint_registry.list_endpoints(user_id)
        except Exception as e:
            raise UpstreamQueryError(f"Could not load push subscriptions for user {user_id}: {e}") from e

        outcomes = self._fan_out((endpoint, payload) for endpoint in endpoints)
        self._handle_gone_endpoints(outcomes)
        return outcomes

    def _endpoints_for(self, user_id: int) -> List[PushEndpoint]:
        try:
            return self.endpoint_registry.list_endpoints(user_id)
        except Exception as e:
            logger.error(f"Error fetching subscriptions for user {user_id}: {e}")
            return []

    def _fan_out(self, jobs: Iterable[Tuple[PushEndpoint, NotificationPayload]]) -> List[DeliveryOutcome]:
        jobs = list(jobs)
        if not jobs:
            return []

        workers = min(self.config.max_workers, len(jobs))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="push") as pool:
            futures = [pool.submit(self._deliver, endpoint, payload) for endpoint, payload in jobs]
            return [future.result() for future in futures]

    def _deliver(self, endpoint: PushEndpoint, payload: NotificationPayload) -> DeliveryOutcome:
        outcome = DeliveryOutcome(
            user_id=endpoint.user_id,
            endpoint_id=endpoint.id,
            endpoint=endpoint.endpoint,
            succeeded=False,
        )
        try:
            self.transport.send(endpoint, payload)
        except DeliveryError as e:
            logger.warning(f"Error sending {payload.type.value} to user {endpoint.user_id} ({e.kind.value}): {e.detail}")
            return outcome.model_copy(update={"error": e.kind, "detail": e.detail})
        except Exception as e:
            # Must not escape: siblings in the same tick still have to be delivered
            logger.exception(f"Unexpected error sending {payload.type.value} to user {endpoint.user_id}")
            return outcome.model_copy(update={"detail": str(e)})

        logger.info(f"Notification {payload.type.value} sent to user {endpoint.user_id}")
        return outcome.model_copy(update={"succeeded": True})

    def _handle_gone_endpoints(self, outcomes: List[DeliveryOutcome]) -> None:
        if self.on_endpoint_gone is None:
            return
        for outcome in outcomes:
            if outcome.error != DeliveryErrorKind.ENDPOINT_GONE:
                continue
            try:
                self.on_endpoint_gone(outcome)
            except Exception as e:
                logger.error(f"Failed to clean up gone endpoint {outcome.endpoint_id} for user {outcome.user_id}: {e}")


def build_sql_dispatcher(
    db: Session,
    notification_config: NotificationConfig,
    transport: Optional[PushTransport] = None,
) -> ReminderDispatcher:
    """Wire a dispatcher to the SQL reminder/subscription tables on `db`."""
    from app.crud.reminder import SqlReminderStore

    store = SqlReminderStore(db)
    return ReminderDispatcher(
        rule_store=store,
        endpoint_registry=store,
        transport=transport or PushTransport(notification_config),
        notification_config=notification_config,
        on_endpoint_gone=store.delete_gone_endpoint if notification_config.prune_gone_endpoints else None,
    )
