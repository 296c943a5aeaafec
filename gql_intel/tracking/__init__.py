from .progress import ProgressSnapshot, ProgressTracker, run_progress_reporter

__all__ = [
    "ProgressSnapshot",
    "ProgressTracker",
    "run_progress_reporter",
]
