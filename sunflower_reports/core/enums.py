from enum import Enum


class HealthStatus(str, Enum):
    HEALTHY = "Healthy"
    DISEASE_DETECTED = "Disease Detected"


class ImageVariant(str, Enum):
    PREVIEW = "PREVIEW"
    THUMBNAIL = "THUMBNAIL"
    REPORT = "REPORT"


class ExportStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REJECTED = "rejected"


class ConfidenceTone(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class HistoryState(str, Enum):
    LOADING = "loading"
    ERROR = "error"
    EMPTY = "empty"
    READY = "ready"
