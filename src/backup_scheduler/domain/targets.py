import uuid
from typing import Optional

from pydantic import BaseModel, Field


class RemoteServer(BaseModel):
    """
    A host that backups are taken from. At most one task per server runs at a time.
    """
    id: str = Field(default_factory=lambda: f"srv_{uuid.uuid4().hex[:8]}")
    label: Optional[str] = None


class BackupDestination(BaseModel):
    """
    Where backup artifacts are stored, e.g. an S3 bucket or a local path.
    """
    id: str = Field(default_factory=lambda: f"dst_{uuid.uuid4().hex[:8]}")
    label: Optional[str] = None
    type: Optional[str] = Field(None, description="Display name of the destination kind, e.g. 'S3'")
