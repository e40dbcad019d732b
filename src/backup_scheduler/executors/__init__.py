from .protocol import BackupExecutor

__all__ = ["BackupExecutor"]
