"""
Visualization modules for shrunken centroid analysis.
"""

from .plots import PlotGenerator
from .style import get_class_colors, get_color_palette, setup_publication_style

__all__ = ["PlotGenerator", "get_class_colors", "get_color_palette", "setup_publication_style"]
