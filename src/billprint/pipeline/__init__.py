"""Print job pipeline: orchestrator, per-job driver and error log."""

from billprint.pipeline.error_log import ErrorLog
from billprint.pipeline.job import PrintJob
from billprint.pipeline.orchestrator import PrintJobOrchestrator, build_print_url, is_receipt_url

__all__ = [
    "ErrorLog",
    "PrintJob",
    "PrintJobOrchestrator",
    "build_print_url",
    "is_receipt_url",
]
