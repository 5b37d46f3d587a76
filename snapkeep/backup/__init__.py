"""
Backup module for snapkeep.

This module handles the core backup functionality including:
- Archive creation and checksums
- Archive catalog
- Verification of new archives
- Retention policy computation
- Pruning of stale archives
- Execution orchestration
"""

from .catalog import Archive, Catalog, list_archives, scan_catalog
from .compression import create_archive
from .executor import BackupExecutor, RunResult
from .pruner import prune, PruneResult
from .retention import RetentionPolicy, compute_keep_set
from .sources import LocalSource
from .storage import LocalStorage
from .verification import verify_archive

__all__ = [
    'Archive',
    'Catalog',
    'list_archives',
    'scan_catalog',
    'create_archive',
    'BackupExecutor',
    'RunResult',
    'prune',
    'PruneResult',
    'RetentionPolicy',
    'compute_keep_set',
    'LocalSource',
    'LocalStorage',
    'verify_archive'
]
