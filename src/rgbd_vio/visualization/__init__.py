"""Visualization sinks."""

from .rerun_visualizer import RerunSink

__all__ = ["RerunSink"]
