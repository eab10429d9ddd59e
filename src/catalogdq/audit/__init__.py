"""Audit logging subsystem for catalogdq.

Main Components
---------------
- AuditLogger: JSONL event logger shared by every job
- LogEvent: one structured event line
- generate_run_id: run identifier used across artifacts
"""

from catalogdq.audit.helpers import generate_run_id, get_package_version
from catalogdq.audit.logger import AuditLogger
from catalogdq.audit.models import LogEvent

__all__ = [
    "AuditLogger",
    "LogEvent",
    "generate_run_id",
    "get_package_version",
]
