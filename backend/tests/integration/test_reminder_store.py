import unittest
from datetime import datetime, time
from unittest.mock import MagicMock, patch

import pytz
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base
import app.models  # noqa: F401  registers all tables
from app.crud import reminder as crud_reminder
from app.exceptions import DeliveryError, DeliveryErrorKind
from app.models.push_subscription import PushSubscription
from app.models.reminder import UserReminder
from app.models.user import User
from app.schemas.notifications import DeliveryOutcome, NotificationType, PushSubscriptionCreate
from app.schemas.reminders import MealRule, ReminderRule, ReminderSettingsUpdate
from app.services.notification_config import NotificationConfig
from app.services.reminder_dispatcher import ReminderDispatcher, build_sql_dispatcher
from app.utils.schedule_parsing import parse_frequency_hours, parse_hhmm

# Use an in-memory SQLite DB for testing logic only
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def subscription(endpoint, p256dh="p256", auth="auth"):
    return PushSubscriptionCreate(endpoint=endpoint, keys={"p256dh": p256dh, "auth": auth})


class TestScheduleParsing(unittest.TestCase):

    def test_parse_hhmm(self):
        self.assertEqual(parse_hhmm("08:30"), time(8, 30))
        self.assertEqual(parse_hhmm("8:05"), time(8, 5))
        self.assertEqual(parse_hhmm("19:00:00"), time(19, 0))
        for bad in (None, "", "24:00", "12:60", "noon", "8.30"):
            self.assertIsNone(parse_hhmm(bad), bad)

    def test_parse_frequency_hours(self):
        self.assertEqual(parse_frequency_hours("every_hour"), 1)
        self.assertEqual(parse_frequency_hours("every_2_hours"), 2)
        self.assertEqual(parse_frequency_hours("every_3_hours"), 3)
        self.assertEqual(parse_frequency_hours("4"), 4)
        self.assertEqual(parse_frequency_hours(6), 6)
        self.assertEqual(parse_frequency_hours("0"), 0)
        for bad in (None, "", "hourly", True):
            self.assertIsNone(parse_frequency_hours(bad), bad)


class TestReminderStore(unittest.TestCase):

    def setUp(self):
        Base.metadata.create_all(bind=engine)
        self.db = TestingSessionLocal()
        self.user = User(name="Asha", email="asha@example.com", password="x")
        self.other = User(name="Ravi", email="ravi@example.com", password="x")
        self.db.add_all([self.user, self.other])
        self.db.commit()

    def tearDown(self):
        self.db.close()
        Base.metadata.drop_all(bind=engine)

    def test_row_to_rule_all_kinds(self):
        row = UserReminder(
            user_id=self.user.id,
            log_meals=True, log_meals_time="08:30",
            drink_water=True, drink_water_frequency="every_2_hours",
            weigh_in=True, weigh_in_day="Monday", weigh_in_time="07:45",
        )
        rule = crud_reminder.row_to_rule(row)

        self.assertEqual(rule.meal.time, time(8, 30))
        self.assertEqual(rule.hydration.frequency, 2)
        self.assertEqual(rule.weigh_in.day_of_week, "monday")
        self.assertEqual(rule.weigh_in.time, time(7, 45))

    def test_disabled_flags_mean_no_rule(self):
        row = UserReminder(
            user_id=self.user.id,
            log_meals=False, log_meals_time="08:30",
            drink_water=False, drink_water_frequency="every_hour",
            weigh_in=False, weigh_in_day="monday", weigh_in_time="08:00",
        )
        rule = crud_reminder.row_to_rule(row)
        self.assertIsNone(rule.meal)
        self.assertIsNone(rule.hydration)
        self.assertIsNone(rule.weigh_in)

    def test_unparsable_fields_drop_only_that_kind(self):
        row = UserReminder(
            user_id=self.user.id,
            log_meals=True, log_meals_time="dinner",
            drink_water=True, drink_water_frequency="often",
            weigh_in=True, weigh_in_day="someday", weigh_in_time="08:00",
        )
        rule = crud_reminder.row_to_rule(row)
        self.assertEqual((rule.meal, rule.hydration, rule.weigh_in), (None, None, None))

    def test_upsert_settings(self):
        crud_reminder.upsert_reminder_settings(
            self.db, self.user.id, ReminderSettingsUpdate(log_meals_time="07:15")
        )
        crud_reminder.upsert_reminder_settings(
            self.db, self.user.id, ReminderSettingsUpdate(log_meals_time="09:45", drink_water=True)
        )

        rows = self.db.query(UserReminder).filter(UserReminder.user_id == self.user.id).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].log_meals_time, "09:45")
        self.assertTrue(rows[0].drink_water)

    def test_subscriptions_are_per_user_and_deduplicated(self):
        crud_reminder.add_push_subscription(self.db, self.user.id, subscription("https://push.example.com/a"))
        crud_reminder.add_push_subscription(
            self.db, self.user.id, subscription("https://push.example.com/a", p256dh="rotated")
        )
        crud_reminder.add_push_subscription(self.db, self.user.id, subscription("https://push.example.com/b"))
        crud_reminder.add_push_subscription(self.db, self.other.id, subscription("https://push.example.com/c"))

        store = crud_reminder.SqlReminderStore(self.db)
        endpoints = store.list_endpoints(self.user.id)

        self.assertEqual(sorted(e.endpoint for e in endpoints), ["https://push.example.com/a", "https://push.example.com/b"])
        rotated = next(e for e in endpoints if e.endpoint.endswith("/a"))
        self.assertEqual(rotated.subscription_info["keys"], {"p256dh": "rotated", "auth": "auth"})
        self.assertEqual(store.list_endpoints(9999), [])

    def test_remove_subscription(self):
        crud_reminder.add_push_subscription(self.db, self.user.id, subscription("https://push.example.com/a"))

        self.assertFalse(crud_reminder.remove_push_subscription(self.db, self.other.id, "https://push.example.com/a"))
        self.assertTrue(crud_reminder.remove_push_subscription(self.db, self.user.id, "https://push.example.com/a"))
        self.assertEqual(crud_reminder.get_push_subscriptions(self.db, self.user.id), [])

    def test_tick_end_to_end_with_pruning(self):
        self.db.add(UserReminder(user_id=self.user.id, log_meals=True, log_meals_time="08:30"))
        self.db.add(UserReminder(user_id=self.other.id, log_meals=True, log_meals_time="19:00"))
        self.db.commit()
        crud_reminder.add_push_subscription(self.db, self.user.id, subscription("https://push.example.com/live"))
        crud_reminder.add_push_subscription(self.db, self.user.id, subscription("https://push.example.com/dead"))
        crud_reminder.add_push_subscription(self.db, self.other.id, subscription("https://push.example.com/other"))

        sent = []

        class Transport:
            def send(self, endpoint, payload):
                sent.append((endpoint.endpoint, payload.type))
                if endpoint.endpoint.endswith("/dead"):
                    raise DeliveryError(DeliveryErrorKind.ENDPOINT_GONE, "410 Gone", 410)

        config = NotificationConfig(
            vapid_public_key="pub", vapid_private_key="priv", vapid_contact="ops@example.com",
            prune_gone_endpoints=True,
        )
        dispatcher = build_sql_dispatcher(self.db, config, Transport())

        outcomes = dispatcher.run_tick(datetime(2024, 1, 1, 8, 30, tzinfo=pytz.utc))

        self.assertEqual(len(outcomes), 2)
        self.assertEqual(sum(o.succeeded for o in outcomes), 1)
        self.assertTrue(all(t == NotificationType.MEAL_REMINDER for _, t in sent))
        remaining = [s.endpoint for s in self.db.query(PushSubscription).all()]
        self.assertEqual(sorted(remaining), ["https://push.example.com/live", "https://push.example.com/other"])

    def test_no_pruning_by_default(self):
        self.db.add(UserReminder(user_id=self.user.id, log_meals=True, log_meals_time="08:30"))
        self.db.commit()
        crud_reminder.add_push_subscription(self.db, self.user.id, subscription("https://push.example.com/dead"))

        class Transport:
            def send(self, endpoint, payload):
                raise DeliveryError(DeliveryErrorKind.ENDPOINT_GONE, "404", 404)

        config = NotificationConfig(vapid_public_key="pub", vapid_private_key="priv", vapid_contact="ops@example.com")
        build_sql_dispatcher(self.db, config, Transport()).run_tick(datetime(2024, 1, 1, 8, 30, tzinfo=pytz.utc))

        self.assertEqual(self.db.query(PushSubscription).count(), 1)


class TestReminderStoreFailures(unittest.TestCase):

    def test_failed_lookup_rolls_back_session(self):
        db = MagicMock()
        db.query.side_effect = OperationalError("SELECT push_subscriptions", {}, Exception("connection reset"))
        store = crud_reminder.SqlReminderStore(db)

        with self.assertRaises(OperationalError):
            store.list_endpoints(1)
        db.rollback.assert_called_once()

    def test_next_user_lookup_runs_after_failure(self):
        db = MagicMock()
        live = PushSubscription(id=20, user_id=2, endpoint="https://push.example.com/20", p256dh_key="p", auth_key="a")
        db.query.side_effect = [
            OperationalError("SELECT push_subscriptions", {}, Exception("connection reset")),
            MagicMock(**{"filter.return_value.all.return_value": [live]}),
        ]
        store = crud_reminder.SqlReminderStore(db)
        dispatcher = ReminderDispatcher(store, store, MagicMock(), NotificationConfig(
            vapid_public_key="pub", vapid_private_key="priv", vapid_contact="ops@example.com",
        ))
        rules = [
            ReminderRule(user_id=1, meal=MealRule(time=time(8, 30))),
            ReminderRule(user_id=2, meal=MealRule(time=time(8, 30))),
        ]

        with patch.object(store, "list_all_reminder_rules", return_value=rules):
            outcomes = dispatcher.run_tick(datetime(2024, 1, 1, 8, 30, tzinfo=pytz.utc))

        db.rollback.assert_called_once()
        self.assertEqual([(o.user_id, o.succeeded) for o in outcomes], [(2, True)])

    def test_failed_prune_rolls_back_session(self):
        db = MagicMock()
        db.commit.side_effect = OperationalError("DELETE push_subscriptions", {}, Exception("lock timeout"))
        store = crud_reminder.SqlReminderStore(db)
        outcome = DeliveryOutcome(user_id=1, endpoint_id=10, endpoint="https://push.example.com/10", succeeded=False)

        with self.assertRaises(OperationalError):
            store.delete_gone_endpoint(outcome)
        db.rollback.assert_called_once()


if __name__ == '__main__':
    unittest.main()
