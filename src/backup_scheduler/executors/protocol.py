from typing import Protocol

from backup_scheduler.domain.log import BackupTaskLog
from backup_scheduler.domain.task import BackupTask, TaskKind


class BackupExecutor(Protocol):
    """
    Protocol class for backup executors.

    How the backup is taken is up to the executor. The scheduler only needs to
    know whether it finished: returning normally means success, raising means failure.
    """

    async def async_execute(self, task: BackupTask, log: BackupTaskLog) -> None:
        """
        Asynchronously run the backup for the given task.

        Args:
            task (BackupTask): The task to back up.
            log (BackupTaskLog): The log of this run. Executors append to ``log.output``.
        """
        ...

    @staticmethod
    def supported_kind() -> TaskKind:
        """
        Return the task kind this executor handles.
        """
        ...
