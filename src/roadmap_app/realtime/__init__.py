from .progress_events import ProgressEvent, ProgressNotifier

__all__ = ["ProgressEvent", "ProgressNotifier"]
