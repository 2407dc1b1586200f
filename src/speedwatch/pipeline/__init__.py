from .monitor import MonitorPipeline, MonitorPipelineConfig, TickResult

__all__ = ["MonitorPipeline", "MonitorPipelineConfig", "TickResult"]
