from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, model_validator


DeliverableType = Literal["file", "url", "artifact"]
EventType = Literal["deliverable_added"]


class Deliverable(BaseModel):
    id: str
    task_id: str
    deliverable_type: DeliverableType
    title: str
    path: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class NewDeliverable(BaseModel):
    """A record about to be inserted; the store assigns id and created_at if absent."""

    task_id: str
    deliverable_type: DeliverableType
    title: str
    path: Optional[str] = None
    description: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None


class DeliverableCreateRequest(BaseModel):
    deliverable_type: DeliverableType
    title: str
    path: Optional[str] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def _check_url(self) -> "DeliverableCreateRequest":
        if self.deliverable_type == "url" and self.path:
            if not self.path.lower().startswith(("http://", "https://")):
                raise ValueError("url deliverables need an absolute http(s) URL")
        return self


class RevealRequest(BaseModel):
    filePath: str


class DeliverableEvent(BaseModel):
    type: EventType
    payload: Deliverable
