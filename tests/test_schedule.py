import unittest
import xml.etree.ElementTree as ET
from datetime import date

from wingetkeeper.core.schedule import (
    AUTHENTICATED_USERS_SID,
    SYSTEM_SID,
    TASK_NS,
    TriggerSpec,
    build_triggers,
    maintenance_task,
    notification_task,
)

NS = {"t": TASK_NS}


class BuildTriggersTests(unittest.TestCase):
    def test_weekly_without_logon(self) -> None:
        triggers = build_triggers("Weekly", "16:00", at_logon=False)
        self.assertEqual(triggers, [
            TriggerSpec(kind="weekly", at="16:00:00", interval=1, weekday="Monday"),
        ])

    def test_daily_with_logon(self) -> None:
        triggers = build_triggers("Daily", "09:00", at_logon=True)
        self.assertEqual(len(triggers), 2)
        self.assertEqual(triggers[0].kind, "logon")
        self.assertEqual(triggers[1], TriggerSpec(kind="daily", at="09:00:00", interval=1))

    def test_each_interval_gives_one_recurrence(self) -> None:
        expected = {
            "Daily": ("daily", 1),
            "Every2Days": ("daily", 2),
            "Weekly": ("weekly", 1),
            "Every2Weeks": ("weekly", 2),
        }
        for interval, (kind, every) in expected.items():
            (trigger,) = build_triggers(interval, "6am", at_logon=False)
            self.assertEqual((trigger.kind, trigger.interval), (kind, every))
            self.assertEqual(trigger.at, "06:00:00")

        (monthly,) = build_triggers("Monthly", "06:00", at_logon=False)
        self.assertEqual((monthly.kind, monthly.day_of_month), ("monthly", 1))

    def test_empty_set(self) -> None:
        self.assertEqual(build_triggers(None, "06:00", at_logon=False), [])
        self.assertEqual([t.kind for t in build_triggers(None, "06:00", at_logon=True)],
                         ["logon"])

    def test_invalid_input(self) -> None:
        with self.assertRaises(ValueError):
            build_triggers("Hourly", "06:00", at_logon=False)
        with self.assertRaises(ValueError):
            build_triggers("Daily", "late", at_logon=False)


class TaskSpecTests(unittest.TestCase):
    def test_maintenance_task(self) -> None:
        triggers = build_triggers("Every2Weeks", "16:00", at_logon=True)
        task = maintenance_task(triggers, r"C:\Python\python.exe")
        self.assertEqual(task.principal_sid, SYSTEM_SID)
        self.assertTrue(task.run_highest)
        self.assertEqual(task.execution_limit, "PT3H")

        task.start_date = date(2026, 1, 5)
        root = ET.fromstring(task.to_xml())
        self.assertIsNotNone(root.find("t:Triggers/t:LogonTrigger", NS))
        boundary = root.find("t:Triggers/t:CalendarTrigger/t:StartBoundary", NS)
        self.assertEqual(boundary.text, "2026-01-05T16:00:00")
        weeks = root.find("t:Triggers/t:CalendarTrigger/t:ScheduleByWeek/t:WeeksInterval", NS)
        self.assertEqual(weeks.text, "2")
        self.assertEqual(root.find("t:Principals/t:Principal/t:UserId", NS).text, SYSTEM_SID)
        self.assertEqual(root.find("t:Settings/t:ExecutionTimeLimit", NS).text, "PT3H")
        self.assertEqual(root.find("t:Actions/t:Exec/t:Arguments", NS).text, "run")

    def test_notification_task(self) -> None:
        task = notification_task(r"C:\Program Files\Winget-AutoUpdate\notify.exe")
        self.assertEqual(task.principal_sid, AUTHENTICATED_USERS_SID)
        self.assertFalse(task.run_highest)
        self.assertEqual(task.execution_limit, "PT5M")
        self.assertEqual(task.ace, "(A;;GRGX;;;AU)")
        self.assertEqual(task.triggers, [])

        root = ET.fromstring(task.to_xml())
        self.assertEqual(root.find("t:Principals/t:Principal/t:GroupId", NS).text,
                         AUTHENTICATED_USERS_SID)
        self.assertIsNone(root.find("t:Actions/t:Exec/t:Arguments", NS))

    def test_monthly_xml(self) -> None:
        task = maintenance_task(build_triggers("Monthly", "02:30", False), "python.exe")
        root = ET.fromstring(task.to_xml())
        day = root.find("t:Triggers/t:CalendarTrigger/t:ScheduleByMonth/t:DaysOfMonth/t:Day", NS)
        self.assertEqual(day.text, "1")
        months = root.find("t:Triggers/t:CalendarTrigger/t:ScheduleByMonth/t:Months", NS)
        self.assertEqual(len(list(months)), 12)


if __name__ == "__main__":
    unittest.main()
