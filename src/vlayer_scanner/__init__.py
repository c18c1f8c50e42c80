"""
vlayer scanner: a read-only HIPAA compliance scanner for source trees.

Rules are regex-based and run per line, per file or once per repository.
Results are aggregated, scored and optionally auto-fixed, with every fix
recorded in a hash-verified audit trail under ``<project>/.vlayer/``.
"""

from .aggregator import exit_code
from .config import ScanConfig, load_config
from .scan import fix_project, scan, scan_corpus, write_baseline

__all__ = [
    "ScanConfig",
    "exit_code",
    "fix_project",
    "load_config",
    "scan",
    "scan_corpus",
    "write_baseline",
]
