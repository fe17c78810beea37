"""Charts and text reports for compiled structures and finished runs."""

from viz.visualize import StructureVisualizer

__all__ = ["StructureVisualizer"]
