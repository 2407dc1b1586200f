from .differencer import DiffResult, DifferencerConfig, FrameDifferencer, diff_frames

__all__ = ["DiffResult", "DifferencerConfig", "FrameDifferencer", "diff_frames"]
