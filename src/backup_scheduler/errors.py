class BackupSchedulerError(Exception):
    """
    Base class for all errors raised by the backup scheduler.
    """


class ConfigurationError(BackupSchedulerError):
    """
    Raised when a task's scheduling configuration cannot be used, e.g. a malformed cron expression.

    Not a ValueError, so pydantic validators propagate it unwrapped.
    """


class DeliveryFailure(BackupSchedulerError):
    """
    Raised when a notification channel could not deliver its payload.
    """
    def __init__(self, channel: str, reason: str):
        super().__init__(f"{channel} delivery failed: {reason}")
        self.channel = channel
        self.reason = reason
