"""Git Operations Package"""

from ocmt.git.analyzer import (
    GitAnalyzer,
    GitError,
    GitStatus,
    SnapshotRestoreError,
    VersionBump,
    parse_status,
    parse_oneline_log,
)

__all__ = [
    "GitAnalyzer",
    "GitError",
    "GitStatus",
    "SnapshotRestoreError",
    "VersionBump",
    "parse_status",
    "parse_oneline_log",
]
