"""Structured signals extracted from agent notification text."""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class TaskComplete(BaseModel):
    kind: Literal["task_complete"] = "task_complete"
    summary: str
    raw: str = Field(..., description="Matched text")


class ProgressUpdate(BaseModel):
    kind: Literal["progress_update"] = "progress_update"
    changed: str
    next: str
    eta: str
    raw: str = Field(..., description="Matched text")


class Blocked(BaseModel):
    kind: Literal["blocked"] = "blocked"
    blocked_on: str
    need: str
    meanwhile: str
    raw: str = Field(..., description="Matched text")


Signal = Annotated[Union[TaskComplete, ProgressUpdate, Blocked], Field(discriminator="kind")]
