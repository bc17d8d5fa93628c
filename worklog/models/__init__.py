from worklog.models.campaign import Campaign
from worklog.models.company import Company
from worklog.models.employee import Employee
from worklog.models.event_outbox import EventOutbox
from worklog.models.project import Project
from worklog.models.task import Task
from worklog.models.time_entry import Association, AssociationKind, EntryOrigin, TimeEntry

__all__ = [
    "Association",
    "AssociationKind",
    "Campaign",
    "Company",
    "Employee",
    "EntryOrigin",
    "EventOutbox",
    "Project",
    "Task",
    "TimeEntry",
]
