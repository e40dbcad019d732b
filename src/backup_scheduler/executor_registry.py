from typing import Dict, Type

from backup_scheduler.domain.task import TaskKind
from backup_scheduler.executors.protocol import BackupExecutor


class ExecutorRegistry:
    """
    Registry mapping each task kind to the executor that performs its backups.
    """
    def __init__(self):
        self._executors: Dict[TaskKind, Type[BackupExecutor]] = {}

    @property
    def supported_kinds(self) -> list:
        return list(self._executors)

    def register(self, executor_class: Type[BackupExecutor]) -> None:
        """
        Register a new executor class for the kind it supports.

        Args:
            executor_class (Type[BackupExecutor]): The executor class to register.
        """
        kind: TaskKind = TaskKind(executor_class.supported_kind())
        if kind in self._executors:
            raise ValueError(f"An executor for kind '{kind.value}' is already registered")
        self._executors[kind] = executor_class

    def get_executor(self, kind: TaskKind) -> BackupExecutor:
        """
        Get an executor instance for a task kind.

        Raises:
            KeyError: If no executor is registered for the kind.
        """
        if kind not in self._executors:
            raise KeyError(f"No executor registered for kind '{TaskKind(kind).value}'")
        return self._executors[kind]()
