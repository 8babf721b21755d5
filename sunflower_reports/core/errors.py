from __future__ import annotations


class PipelineError(RuntimeError):
    pass


class RecordFetchFailed(PipelineError):
    """History retrieval failed. The view shows a retry action."""


class ImageUnavailable(PipelineError):
    """No image reference, or both the primary and fallback loads failed."""


class TranscodeFailed(PipelineError):
    pass


class DocumentAssemblyFailed(PipelineError):
    """The PDF builder itself raised. This is the only failure that fails an export."""


class ExportAlreadyRunning(PipelineError):
    def __init__(self, key: int | str) -> None:
        super().__init__(f"Export already running for {key!r}")
        self.key = key
