"""
Artifact Bundle Model
Files materialised on disk from the artifacts of one successful run.
"""
from typing import List, Optional

from pydantic import BaseModel


class ArtifactFile(BaseModel):
    path: str           # relative to the bundle root, forward slashes
    size: int


class ArtifactBundle(BaseModel):
    run_id: int
    root: str
    artifact_names: List[str] = []
    files: List[ArtifactFile] = []      # files of artifact_names only
    payload: Optional[ArtifactFile] = None

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)
