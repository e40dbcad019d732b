from .cadence import Cadence, CadenceType, DailyCadence, WeeklyCadence, CronCadence
from .task import BackupTask, TaskStatus, TaskKind, NotificationTargets
from .log import BackupTaskLog
from .targets import RemoteServer, BackupDestination

__all__ = [
    "Cadence", "CadenceType", "DailyCadence", "WeeklyCadence", "CronCadence",
    "BackupTask", "TaskStatus", "TaskKind", "NotificationTargets",
    "BackupTaskLog", "RemoteServer", "BackupDestination",
]
