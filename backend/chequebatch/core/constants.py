"""Shared constants and enums used across the application."""

from enum import StrEnum


class BatchStatus(StrEnum):
    """Overall status of a batch job."""

    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    # Part of the stored vocabulary; no transition assigns it.
    HOLD = "HOLD"
    COMPLETED = "COMPLETED"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    FAILED = "FAILED"


TERMINAL_BATCH_STATUSES = frozenset({
    BatchStatus.COMPLETED,
    BatchStatus.PARTIALLY_COMPLETED,
    BatchStatus.FAILED,
})


class ItemStatus(StrEnum):
    """Status of a single cheque within a batch."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StageName(StrEnum):
    """The four analysis stages, values are the stage service routes."""

    ANALYZE_CHEQUE = "analyze-cheque"
    DETECT_INSTITUTION = "detect-institution"
    ANALYZE_COMPLIANCE = "analyze-compliance"
    GENERATE_DECISION = "generate-decision"


class BatchType(StrEnum):
    """How the submitted batch payload is packaged."""

    ZIP = "zip"
    PDF = "pdf"
    TIFF = "tiff"
    IMAGES = "images"


class RiskLevel(StrEnum):
    """Risk bucket labels."""

    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


# ─── Per-item retry ──────────────────────────────
MAX_ITEM_ATTEMPTS = 3                 # initial attempt + 2 retries
RETRY_BACKOFF_BASE_MS = 2000          # delay before retry k = base * 2**k

# ─── Scheduling ──────────────────────────────────
PARALLEL_CHUNK_SIZE = 3               # fixed: protects shared downstream quota
INTER_CHUNK_PAUSE_MS = 1000
DEFAULT_ITEMS_PER_SECOND = 1.0

# ─── Report decision buckets (risk score 0-100) ──
REPORT_HIGH_RISK_THRESHOLD = 80
REPORT_MEDIUM_RISK_THRESHOLD = 50

# ─── Compliance bands used for OSFI reportability ─
# Distinct from the report buckets above; used by registry summaries.
COMPLIANCE_HIGH_RISK_THRESHOLD = 70
COMPLIANCE_MEDIUM_RISK_THRESHOLD = 40

UNKNOWN_INSTITUTION = "Unknown"
