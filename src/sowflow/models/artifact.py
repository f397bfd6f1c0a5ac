"""Artifact model for Sowflow.

Artifacts carry the outputs of one phase into the inputs of another. They
are always moved by value: a copied artifact shares nothing with its source.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterator

from pydantic import Field, RootModel

from sowflow.errors import ArtifactIndexError
from sowflow.models.base import SowflowModel, utcnow


class Artifact(SowflowModel):
    """A file or document produced or consumed by a phase.

    Attributes:
        type: Free-form type tag (e.g. "review", "pr_body", "summary")
        path: Reference to the artifact, usually relative to the state root
        approved: Whether the artifact has been approved
        created_at: When the artifact was recorded
        metadata: Free-form artifact metadata (e.g. a review assessment)
    """

    type: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    approved: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def copy_value(self) -> Artifact:
        """Return a deep, independent copy of this artifact."""
        return self.model_copy(deep=True)


class ArtifactCollection(RootModel[list[Artifact]]):
    """Ordered list of artifacts addressed by index."""

    root: list[Artifact] = Field(default_factory=list)

    def __iter__(self) -> Iterator[Artifact]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> Artifact:
        return self.get(index)

    def get(self, index: int) -> Artifact:
        """Return the artifact at index.

        Raises:
            ArtifactIndexError: If index is out of range.
        """
        if index < 0 or index >= len(self.root):
            raise ArtifactIndexError(index, len(self.root))
        return self.root[index]

    def add(self, artifact: Artifact) -> None:
        """Append an artifact."""
        self.root.append(artifact)

    def remove(self, index: int) -> Artifact:
        """Remove and return the artifact at index.

        Raises:
            ArtifactIndexError: If index is out of range.
        """
        artifact = self.get(index)
        del self.root[index]
        return artifact

    def of_type(self, artifact_type: str) -> list[Artifact]:
        """Return artifacts with the given type, in insertion order."""
        return [a for a in self.root if a.type == artifact_type]

    def latest(self, artifact_type: str, approved_only: bool = False) -> Artifact | None:
        """Return the most recently added artifact of a type, or None.

        Args:
            artifact_type: Artifact type tag to match
            approved_only: Skip artifacts that are not approved
        """
        for artifact in reversed(self.root):
            if artifact.type != artifact_type:
                continue
            if approved_only and not artifact.approved:
                continue
            return artifact
        return None
