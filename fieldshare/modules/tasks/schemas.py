"""
Pydantic schemas for task API responses.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class TaskStatusResponse(BaseModel):
    """Response for task status check."""
    task_id: str
    status: str = Field(..., description="pending, started, success, failure, retry")
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class TaskTriggerResponse(BaseModel):
    """Response when a background task is triggered."""
    task_id: str
    status: str = "queued"
    message: str
    check_status_url: str
