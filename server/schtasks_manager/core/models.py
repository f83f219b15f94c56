"""Request and response models for the HTTP API."""
from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr

from .config import ROOT_TASK_PATH


class CredentialModel(BaseModel):
    """Explicit credential for a remote host or cluster."""
    username: str = Field(..., min_length=1)
    password: SecretStr


class TaskRequest(BaseModel):
    """Target of a single scheduled task operation."""
    task_name: str = Field(..., min_length=1, description="Name of the scheduled task")
    task_path: str = Field(
        ROOT_TASK_PATH, description="Task Scheduler folder containing the task"
    )
    computer_name: Optional[str] = Field(
        None, description="Remote host; omit to run on the local machine"
    )
    credential: Optional[CredentialModel] = None
    confirm: Optional[bool] = None
    what_if: bool = False


class TaskQueryRequest(BaseModel):
    """Filter for listing scheduled tasks."""
    task_name: Optional[str] = None
    task_path: Optional[str] = None
    computer_name: Optional[str] = None
    credential: Optional[CredentialModel] = None


class TaskRegistrationRequest(BaseModel):
    """Register a task from an XML definition."""
    task_name: str = Field(..., min_length=1)
    task_path: str = ROOT_TASK_PATH
    xml: str = Field(..., min_length=1, description="Task Scheduler XML definition")
    computer_name: Optional[str] = None
    credential: Optional[CredentialModel] = None
    task_user: Optional[str] = None
    task_password: Optional[SecretStr] = None
    force: bool = False


class ClusteredTaskRequest(BaseModel):
    """Target of a clustered scheduled task operation."""
    task_name: str = Field(..., min_length=1)
    cluster: str = Field(..., min_length=1, description="Failover cluster name")
    credential: Optional[CredentialModel] = None


class ClusteredTaskQueryRequest(BaseModel):
    """Filter for listing clustered scheduled tasks."""
    cluster: str = Field(..., min_length=1)
    task_name: Optional[str] = None
    task_type: Optional[str] = None
    credential: Optional[CredentialModel] = None


class ClusteredTaskRegistrationRequest(BaseModel):
    """Register a task on a failover cluster."""
    task_name: str = Field(..., min_length=1)
    cluster: str = Field(..., min_length=1)
    xml: str = Field(..., min_length=1)
    task_type: str = Field(..., description="ResourceSpecific, AnyNode or ClusterWide")
    resource: Optional[str] = None
    credential: Optional[CredentialModel] = None


class ScheduledTaskModel(BaseModel):
    """Summary of a registered scheduled task."""
    task_name: str
    task_path: str
    state: str
    description: Optional[str] = None
    author: Optional[str] = None


class ClusteredTaskModel(BaseModel):
    """Summary of a clustered scheduled task."""
    task_name: str
    task_type: str
    current_owner: Optional[str] = None
    cluster: Optional[str] = None


class TaskActionResponse(BaseModel):
    """Outcome of a task command."""
    status: str  # "accepted" or "skipped"
    action: str
    task_name: str
    target: str


class TaskListResponse(BaseModel):
    tasks: List[ScheduledTaskModel]


class ClusteredTaskListResponse(BaseModel):
    tasks: List[ClusteredTaskModel]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    app_name: str
