"""Scheduled-task definitions built from the update policy.

Registering the tasks is the job of an external registrar; it consumes the
TaskSpec objects built here (directly, or as Task Scheduler XML).
"""

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import date, datetime

from wingetkeeper.branding import AppBranding
from wingetkeeper.config.policy import normalize_time

logger = logging.getLogger(__name__)

TASK_NS = "http://schemas.microsoft.com/windows/2004/02/mit/task"

SYSTEM_SID = "S-1-5-18"
AUTHENTICATED_USERS_SID = "S-1-5-11"
# Generic read + execute for Authenticated Users, added after registration
NOTIFY_TASK_ACE = "(A;;GRGX;;;AU)"

MAINTENANCE_LIMIT = "PT3H"
NOTIFY_LIMIT = "PT5M"

# Weekly recurrences all land on the same weekday
WEEKLY_DAY = "Monday"


def _tag(name: str) -> str:
    return f"{{{TASK_NS}}}{name}"


@dataclass(frozen=True)
class TriggerSpec:
    """One Task Scheduler trigger.

    kind is 'logon', 'daily', 'weekly' or 'monthly'. interval counts days for
    daily triggers and weeks for weekly ones.
    """
    kind: str
    at: str = ""                # HH:MM:SS, unused for logon
    interval: int = 1
    weekday: str = ""
    day_of_month: int = 0

    def describe(self) -> str:
        if self.kind == 'logon':
            return "At logon"
        if self.kind == 'daily':
            every = "day" if self.interval == 1 else f"{self.interval} days"
            return f"Every {every} at {self.at}"
        if self.kind == 'weekly':
            every = "week" if self.interval == 1 else f"{self.interval} weeks"
            return f"Every {every} on {self.weekday} at {self.at}"
        return f"Monthly on day {self.day_of_month} at {self.at}"


# UpdateInterval -> recurrence trigger template
_RECURRENCE = {
    'Daily': dict(kind='daily', interval=1),
    'Every2Days': dict(kind='daily', interval=2),
    'Weekly': dict(kind='weekly', interval=1, weekday=WEEKLY_DAY),
    'Every2Weeks': dict(kind='weekly', interval=2, weekday=WEEKLY_DAY),
    'Monthly': dict(kind='monthly', day_of_month=1),
}


def build_triggers(interval: str | None, time_of_day: str,
                   at_logon: bool) -> list[TriggerSpec]:
    """Triggers for the maintenance task.

    An empty list is valid; the registrar then creates a task with no
    triggers that can be started on demand.
    """
    triggers = []
    if at_logon:
        triggers.append(TriggerSpec(kind='logon'))

    if interval:
        template = _RECURRENCE.get(interval)
        if template is None:
            raise ValueError(f"Unknown update interval: {interval!r}")
        triggers.append(TriggerSpec(at=normalize_time(time_of_day), **template))

    logger.debug("Triggers: %s", [t.describe() for t in triggers])
    return triggers


def triggers_from_policy(settings) -> list[TriggerSpec]:
    """Build triggers from the persisted UpdateInterval/UpdateTime/UpdateOnLogin."""
    interval = settings.get('UpdateInterval')
    time_of_day = settings.get('UpdateTime') or '06:00:00'
    return build_triggers(interval, time_of_day, settings.flag('UpdateOnLogin'))


@dataclass
class TaskSpec:
    """Everything the registrar needs to create one scheduled task."""
    name: str
    command: str
    arguments: str
    principal_sid: str
    run_highest: bool
    execution_limit: str            # ISO 8601 duration
    triggers: list[TriggerSpec] = field(default_factory=list)
    ace: str = ""                   # SDDL entry to add after registration
    start_date: date | None = None

    def to_xml(self) -> str:
        """Render Task Scheduler 1.2 XML (schtasks /Create /XML)."""
        ET.register_namespace('', TASK_NS)

        task = ET.Element(_tag('Task'), version='1.2')
        info = ET.SubElement(task, _tag('RegistrationInfo'))
        ET.SubElement(info, _tag('Author')).text = AppBranding.PUBLISHER
        ET.SubElement(info, _tag('URI')).text = f"\\{self.name}"

        triggers = ET.SubElement(task, _tag('Triggers'))
        start = (self.start_date or datetime.now().date()).isoformat()
        for trig in self.triggers:
            self._trigger_xml(triggers, trig, start)

        principals = ET.SubElement(task, _tag('Principals'))
        principal = ET.SubElement(principals, _tag('Principal'), id='Author')
        if self.principal_sid == SYSTEM_SID:
            ET.SubElement(principal, _tag('UserId')).text = self.principal_sid
        else:
            ET.SubElement(principal, _tag('GroupId')).text = self.principal_sid
        ET.SubElement(principal, _tag('RunLevel')).text = (
            'HighestAvailable' if self.run_highest else 'LeastPrivilege'
        )

        settings = ET.SubElement(task, _tag('Settings'))
        ET.SubElement(settings, _tag('MultipleInstancesPolicy')).text = 'IgnoreNew'
        ET.SubElement(settings, _tag('DisallowStartIfOnBatteries')).text = 'false'
        ET.SubElement(settings, _tag('StopIfGoingOnBatteries')).text = 'false'
        ET.SubElement(settings, _tag('StartWhenAvailable')).text = 'true'
        ET.SubElement(settings, _tag('ExecutionTimeLimit')).text = self.execution_limit

        actions = ET.SubElement(task, _tag('Actions'), Context='Author')
        exec_ = ET.SubElement(actions, _tag('Exec'))
        ET.SubElement(exec_, _tag('Command')).text = self.command
        if self.arguments:
            ET.SubElement(exec_, _tag('Arguments')).text = self.arguments

        ET.indent(task)
        return ET.tostring(task, encoding='unicode', xml_declaration=True)

    @staticmethod
    def _trigger_xml(parent, trig: TriggerSpec, start: str):
        if trig.kind == 'logon':
            ET.SubElement(parent, _tag('LogonTrigger'))
            return

        el = ET.SubElement(parent, _tag('CalendarTrigger'))
        ET.SubElement(el, _tag('StartBoundary')).text = f"{start}T{trig.at}"
        if trig.kind == 'daily':
            sched = ET.SubElement(el, _tag('ScheduleByDay'))
            ET.SubElement(sched, _tag('DaysInterval')).text = str(trig.interval)
        elif trig.kind == 'weekly':
            sched = ET.SubElement(el, _tag('ScheduleByWeek'))
            ET.SubElement(sched, _tag('WeeksInterval')).text = str(trig.interval)
            days = ET.SubElement(sched, _tag('DaysOfWeek'))
            ET.SubElement(days, _tag(trig.weekday))
        else:
            sched = ET.SubElement(el, _tag('ScheduleByMonth'))
            days = ET.SubElement(sched, _tag('DaysOfMonth'))
            ET.SubElement(days, _tag('Day')).text = str(trig.day_of_month)
            months = ET.SubElement(sched, _tag('Months'))
            for month in ('January', 'February', 'March', 'April', 'May', 'June',
                          'July', 'August', 'September', 'October', 'November',
                          'December'):
                ET.SubElement(months, _tag(month))


def maintenance_task(triggers: list[TriggerSpec], command: str,
                     arguments: str = "run") -> TaskSpec:
    """SYSTEM task that runs the maintenance pass, capped at 3 hours."""
    return TaskSpec(
        name=AppBranding.MAINTENANCE_TASK,
        command=command,
        arguments=arguments,
        principal_sid=SYSTEM_SID,
        run_highest=True,
        execution_limit=MAINTENANCE_LIMIT,
        triggers=list(triggers),
    )


def notification_task(command: str, arguments: str = "") -> TaskSpec:
    """User-context task that shows notifications, capped at 5 minutes."""
    return TaskSpec(
        name=AppBranding.NOTIFY_TASK,
        command=command,
        arguments=arguments,
        principal_sid=AUTHENTICATED_USERS_SID,
        run_highest=False,
        execution_limit=NOTIFY_LIMIT,
        ace=NOTIFY_TASK_ACE,
    )
