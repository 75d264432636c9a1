"""
Artifact Service
================
Locates the payload file among the artifacts of one run and stages it at the
canonical output path.

Scope:
    Only the files of the bundle are searched, i.e. the artifact folders this
    run just downloaded. Anything else in the destination directory (older
    artifact folders, earlier canonical copies, versioned update folders) is
    never a candidate.

Search Depth:
    The top level of the bundle and exactly one level of sub-folders. Providers
    wrap each artifact in a folder named after it, so the payload normally sits
    at <root>/<artifact-name>/<file>.apk.

Ordering:
    Files are visited in sorted path order and the first match wins, so the
    same bundle always yields the same payload.
"""
import os
import shutil
import logging
from typing import List, Optional, Sequence

from web2apk.core.errors import PayloadNotFound
from web2apk.models.artifact_bundle import ArtifactBundle, ArtifactFile

logger = logging.getLogger(__name__)


def _matches(name: str, extension: str) -> bool:
    return name.lower().endswith(extension.lower())


def scan_tree(root: str, only: Optional[Sequence[str]] = None) -> List[ArtifactFile]:
    """
    List files at the top level and one level below, relative to root.

    `only` restricts the listing to those top-level entries.
    """
    files: List[ArtifactFile] = []
    if not os.path.isdir(root):
        return files

    entries = sorted(os.listdir(root)) if only is None else sorted(set(only))
    for entry in entries:
        entry_path = os.path.join(root, entry)
        if os.path.isdir(entry_path):
            for sub_entry in sorted(os.listdir(entry_path)):
                sub_path = os.path.join(entry_path, sub_entry)
                if os.path.isfile(sub_path):
                    files.append(ArtifactFile(
                        path=f"{entry}/{sub_entry}", size=os.path.getsize(sub_path)
                    ))
        elif os.path.isfile(entry_path):
            files.append(ArtifactFile(path=entry, size=os.path.getsize(entry_path)))
    return files


def find_payload(bundle: ArtifactBundle, extension: str, exclude: str = "") -> Optional[ArtifactFile]:
    """
    First bundle file ending in `extension`, at most one folder deep.

    `exclude` names a top-level file to skip (the canonical output itself).
    """
    for artifact_file in sorted(bundle.files, key=lambda f: f.path):
        if artifact_file.path.count("/") > 1 or artifact_file.path == exclude:
            continue
        if _matches(artifact_file.path, extension):
            return artifact_file
    return None


def stage_payload(bundle: ArtifactBundle, extension: str, canonical_name: str) -> str:
    """
    Copy the bundle's payload to <root>/<canonical_name> and record it on
    bundle.payload.

    Raises PayloadNotFound (and copies nothing) when the bundle holds no match.
    """
    match = find_payload(bundle, extension, exclude=canonical_name)
    if match is None:
        logger.warning(
            "No %s file among %d artifact file(s) of run #%d",
            extension, len(bundle.files), bundle.run_id,
        )
        raise PayloadNotFound(bundle.run_id, bundle.root, extension)

    source = os.path.abspath(os.path.join(bundle.root, match.path))
    destination = os.path.abspath(os.path.join(bundle.root, canonical_name))
    if source != destination:
        shutil.copy2(source, destination)
    bundle.payload = match
    logger.info("Payload staged: %s (from %s)", destination, match.path)
    return destination


def format_size(size_bytes: int) -> str:
    """Human-readable size, e.g. '4.21 MB'."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.2f} KB"
    return f"{size_bytes / (1024 * 1024):.2f} MB"
