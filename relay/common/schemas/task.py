"""
Proposed Task Schema

Output of the suggestion engine. Proposed tasks are ephemeral: they live for
one review interaction and are then either dropped or written to the tracker.
"""

from typing import List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class SourceLink(BaseModel):
    """Link back to a signal that contributed to a task"""
    text: str = ""
    url: str = ""


class ProposedTask(BaseModel):
    """
    A task suggested by the model.

    Model output uses several spellings for the same field, so
    ``projectName`` is accepted for ``project`` and ``reasoning`` or
    ``description`` for ``justification``.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = Field(..., min_length=1)
    project: str = Field(
        ...,
        validation_alias=AliasChoices("project", "projectName", "category"),
        description="Target category (tracker project name)",
    )
    justification: str = Field(
        default="",
        validation_alias=AliasChoices("justification", "reasoning", "description"),
    )
    subtasks: List[str] = Field(default_factory=list)
    citations: List[str] = Field(default_factory=list)
    source_links: List[SourceLink] = Field(
        default_factory=list,
        validation_alias=AliasChoices("source_links", "sourceLinks"),
    )
