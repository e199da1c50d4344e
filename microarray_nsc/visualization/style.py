"""
Shared figure style and color assignments.
"""

from typing import Any, Dict, Optional, Sequence

import matplotlib.pyplot as plt

DEFAULT_FONT_SIZES = {"title": 12, "label": 11, "tick": 10, "legend": 9}

# Plot elements that are not classes
DEFAULT_ELEMENT_COLORS = {
    "error": "#e74c3c",
    "features": "#3498db",
    "selected": "#2ecc71",
    "neutral": "#7f8c8d",
}

DEFAULT_CLASS_PALETTE = ["#3498db", "#e74c3c", "#2ecc71", "#9b59b6", "#e67e22"]


def _viz_params(config: Optional[Any]) -> Dict[str, Any]:
    if config is not None and hasattr(config, "viz_params"):
        return config.viz_params
    return {}


def setup_publication_style(config: Optional[Any] = None) -> None:
    """
    Set matplotlib rcParams for the pipeline's figures.

    Font sizes missing from ``viz_params["font_sizes"]`` keep their defaults.

    Args:
        config: Optional configuration object with viz_params
    """
    viz = _viz_params(config)
    fonts = {**DEFAULT_FONT_SIZES, **viz.get("font_sizes", {})}
    dpi = viz.get("dpi", 300)

    plt.rcParams.update({
        "font.family": "sans-serif",
        "font.sans-serif": ["Arial", "Helvetica", "DejaVu Sans"],
        "font.size": fonts["tick"],
        "axes.titlesize": fonts["title"],
        "axes.labelsize": fonts["label"],
        "xtick.labelsize": fonts["tick"],
        "ytick.labelsize": fonts["tick"],
        "legend.fontsize": fonts["legend"],
        "figure.dpi": min(dpi, 150),
        "savefig.dpi": dpi,
        "savefig.bbox": "tight",
        "savefig.pad_inches": 0.1,
        "axes.linewidth": 1.0,
        "axes.spines.top": False,
        "axes.spines.right": False,
        "image.cmap": "RdBu_r",
        # Editable text in vector output
        "pdf.fonttype": 42,
        "ps.fonttype": 42,
    })


def get_color_palette(config: Optional[Any] = None) -> Dict[str, str]:
    """Colors for plot elements (error curve, feature counts, selection marker)."""
    return {**DEFAULT_ELEMENT_COLORS, **_viz_params(config).get("colors", {})}


def get_class_colors(classes: Sequence, config: Optional[Any] = None) -> Dict[str, str]:
    """
    Assign a color to every class label, cycling through the class palette.

    Args:
        classes: Class labels in display order
        config: Optional configuration object with viz_params["class_palette"]

    Returns:
        Dictionary mapping class label (as string) to hex color
    """
    palette = _viz_params(config).get("class_palette") or DEFAULT_CLASS_PALETTE
    return {str(c): palette[i % len(palette)] for i, c in enumerate(classes)}
