"""
Plotting functions for shrunken centroid analysis.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, Tuple, Union

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from ..data_loaders.dataset import ExpressionDataset
from ..models.cross_validation import CrossValidationResult
from ..models.shrunken_centroid import ShrunkenCentroidModel
from .style import get_class_colors, get_color_palette, setup_publication_style

logger = logging.getLogger(__name__)


class PlotGenerator:
    """
    Generate publication-ready plots for shrunken centroid analysis.
    """

    def __init__(self, config: Optional[Any] = None):
        """
        Initialize plot generator.

        Args:
            config: Configuration object with visualization parameters
        """
        self.config = config
        self.colors = get_color_palette(config)

        # Default figure sizes
        self.fig_sizes = {
            "single": (6, 5),
            "wide": (8, 6),
            "tall": (6, 8)
        }
        self.dpi = 300
        self.heatmap_features = 50

        if config is not None and hasattr(config, "viz_params"):
            if "figure_sizes" in config.viz_params:
                self.fig_sizes.update(config.viz_params["figure_sizes"])
            self.dpi = config.viz_params.get("dpi", self.dpi)
            self.heatmap_features = config.viz_params.get(
                "heatmap_features", self.heatmap_features
            )

        # Setup matplotlib style
        setup_publication_style(config)

    def _save(self, fig, output_path: Path) -> None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=self.dpi)
        plt.close(fig)

    def plot_cv_curve(
        self,
        cv_result: CrossValidationResult,
        output_path: Union[str, Path],
        selected_threshold: Optional[float] = None,
        title: Optional[str] = None
    ) -> None:
        """
        Plot cross-validated error and retained features against the threshold.

        The upper panel shows the overall error rate with one standard error
        bars and the error rate of every class; the lower panel shows how
        many features the full-data model retains.

        Args:
            cv_result: Output of ThresholdCrossValidator.cross_validate
            output_path: Path to save figure
            selected_threshold: Optional threshold to mark
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating CV curve -> {output_path}")

        thresholds = cv_result.thresholds
        fig, (ax_err, ax_feat) = plt.subplots(
            2, 1, sharex=True, figsize=self.fig_sizes["tall"],
            gridspec_kw={"height_ratios": [2, 1]}
        )

        ax_err.errorbar(
            thresholds, cv_result.error_rate, yerr=cv_result.standard_error,
            color=self.colors["error"], marker="o", markersize=4, lw=2,
            capsize=2, label="Overall"
        )

        class_colors = get_class_colors(cv_result.classes, self.config)
        for cls in cv_result.classes:
            members = cv_result.y_true == cls
            class_error = (cv_result.cv_predictions[:, members] != cls).mean(axis=1)
            ax_err.plot(
                thresholds, class_error, lw=1, linestyle="--",
                color=class_colors[str(cls)], label=str(cls)
            )

        ax_err.set_ylabel("Misclassification Error")
        ax_err.set_ylim(-0.02, 1.02)
        ax_err.legend(loc="best", frameon=True, fancybox=False, edgecolor="black")
        ax_err.grid(True, alpha=0.3, linestyle="--")

        ax_feat.step(
            thresholds, cv_result.n_retained, where="mid",
            color=self.colors["features"], lw=2
        )
        ax_feat.set_xlabel("Threshold")
        ax_feat.set_ylabel("Retained Features")
        ax_feat.grid(True, alpha=0.3, linestyle="--")

        if selected_threshold is not None:
            for ax in (ax_err, ax_feat):
                ax.axvline(
                    selected_threshold, color=self.colors["selected"],
                    linestyle="-", lw=1.5
                )
            ax_err.text(
                0.98, 0.95, f"Selected = {selected_threshold:.3f}",
                transform=ax_err.transAxes, ha="right", va="top",
                bbox=dict(boxstyle="round", facecolor="white", edgecolor="gray")
            )

        if title is None:
            title = f"{cv_result.n_folds}-Fold Cross-Validation"
        ax_err.set_title(title)

        fig.tight_layout()
        self._save(fig, output_path)
        logger.info("  CV curve saved")

    def plot_shrunken_centroids(
        self,
        model: ShrunkenCentroidModel,
        feature_labels: Sequence[str],
        output_path: Union[str, Path],
        max_features: int = 40,
        title: Optional[str] = None
    ) -> None:
        """
        Bar chart of the shrunken standardized class differences of retained features.

        Args:
            model: Trained model
            feature_labels: Display name per model feature
            output_path: Path to save figure
            max_features: Show at most this many of the highest scoring features
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating shrunken centroid plot -> {output_path}")

        idx = model.retained_indices
        scores = model.shrunken_distances[:, idx]
        order = np.argsort(-np.abs(scores).max(axis=0), kind="stable")[:max_features]
        idx, scores = idx[order], scores[:, order]
        names = np.asarray(feature_labels, dtype=object)[idx]

        n_classes = len(model.classes)
        height = max(3.0, 0.25 * len(idx) + 1.5)
        fig, axes = plt.subplots(
            1, n_classes, sharey=True, figsize=(3 * n_classes + 1.5, height), squeeze=False
        )
        class_colors = get_class_colors(model.classes, self.config)
        positions = np.arange(len(idx))

        for k, (cls, ax) in enumerate(zip(model.classes, axes[0])):
            ax.barh(positions, scores[k], color=class_colors[str(cls)], height=0.7)
            ax.axvline(0, color="black", lw=0.8)
            ax.set_title(str(cls))
            ax.set_xlabel("Shrunken Difference")
            ax.grid(True, alpha=0.3, linestyle="--", axis="x")

        first = axes[0][0]
        first.set_yticks(positions)
        first.set_yticklabels(names)
        first.invert_yaxis()
        if len(idx) == 0:
            first.text(
                0.5, 0.5, "No features retained", transform=first.transAxes,
                ha="center", va="center"
            )

        if title is None:
            title = (
                f"Shrunken Centroids (threshold = {model.threshold:.3f}, "
                f"{model.n_retained} features)"
            )
        fig.suptitle(title)

        fig.tight_layout()
        self._save(fig, output_path)
        logger.info("  Shrunken centroid plot saved")

    def plot_confusion(
        self,
        table: pd.DataFrame,
        output_path: Union[str, Path],
        title: Optional[str] = None
    ) -> None:
        """
        Heatmap of a confusion table (rows = true class, columns = predicted class).

        Args:
            table: Output of confusion_table
            output_path: Path to save figure
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating confusion heatmap -> {output_path}")

        fig, ax = plt.subplots(figsize=self.fig_sizes["single"])
        sns.heatmap(
            table, annot=True, fmt="d", cmap="Blues", cbar=False,
            linewidths=0.5, linecolor="white", square=True, ax=ax
        )
        ax.set_xlabel("Predicted Class")
        ax.set_ylabel("True Class")

        if title is None:
            title = "Confusion Table"
        ax.set_title(title)

        self._save(fig, output_path)
        logger.info("  Confusion heatmap saved")

    def plot_roc_curves(
        self,
        roc_data: Dict[str, Tuple[np.ndarray, np.ndarray, float]],
        output_path: Union[str, Path],
        title: Optional[str] = None
    ) -> None:
        """
        Generate ROC curves for one or more evaluations.

        Args:
            roc_data: Dictionary of name -> (fpr, tpr, auc)
            output_path: Path to save figure
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating ROC curves -> {output_path}")

        fig, ax = plt.subplots(figsize=self.fig_sizes["single"])

        palette = get_class_colors(list(roc_data), self.config)
        for name, (fpr, tpr, auc) in roc_data.items():
            ax.plot(fpr, tpr, lw=2, color=palette[str(name)], label=f"{name} (AUC = {auc:.3f})")

        # Diagonal line
        ax.plot([0, 1], [0, 1], color="gray", lw=1.5, linestyle="--", alpha=0.7)

        ax.set_xlim([0.0, 1.0])
        ax.set_ylim([0.0, 1.05])
        ax.set_xlabel("False Positive Rate")
        ax.set_ylabel("True Positive Rate")

        if title is None:
            title = "ROC Curves: Classification Performance"
        ax.set_title(title)

        ax.legend(loc="lower right", frameon=True, fancybox=False, edgecolor="black")
        ax.grid(True, alpha=0.3, linestyle="--")

        self._save(fig, output_path)
        logger.info("  ROC curves saved")

    def plot_pca(
        self,
        scores: pd.DataFrame,
        explained: pd.Series,
        labels: Sequence,
        output_path: Union[str, Path],
        label_colors: Optional[Dict[str, str]] = None,
        markers: Optional[Dict[str, str]] = None,
        title: Optional[str] = None
    ) -> None:
        """
        Scatter plot of the first two principal component scores.

        Args:
            scores: Samples x components table from principal_components
            explained: Explained variance ratio per component
            labels: Label per sample, used for coloring
            output_path: Path to save figure
            label_colors: Mapping of label -> color
            markers: Mapping of label -> marker style
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating PCA plot -> {output_path}")

        if scores.shape[1] < 2:
            raise ValueError("PCA plot needs at least two components")

        labels = np.asarray([str(label) for label in labels], dtype=object)
        unique_labels = list(dict.fromkeys(sorted(labels)))
        if label_colors is None:
            label_colors = get_class_colors(unique_labels, self.config)

        pc_x, pc_y = scores.columns[:2]
        fig, ax = plt.subplots(figsize=self.fig_sizes["single"])

        for label in unique_labels:
            mask = labels == label
            marker = markers.get(label, "o") if markers else "o"
            ax.scatter(
                scores.loc[mask, pc_x],
                scores.loc[mask, pc_y],
                c=label_colors.get(label, "#333333"),
                marker=marker,
                s=60,
                alpha=0.7,
                label=label,
                edgecolors="white",
                linewidths=0.5,
            )

        ax.set_xlabel(f"{pc_x} ({explained[pc_x] * 100:.1f}%)")
        ax.set_ylabel(f"{pc_y} ({explained[pc_y] * 100:.1f}%)")

        if title is None:
            title = "PCA Analysis"
        ax.set_title(title)

        ax.legend(loc="best", frameon=True, fancybox=False, edgecolor="black")
        ax.grid(True, alpha=0.3, linestyle="--")

        self._save(fig, output_path)
        logger.info("  PCA plot saved")

    def plot_cluster_heatmap(
        self,
        dataset: ExpressionDataset,
        output_path: Union[str, Path],
        n_features: Optional[int] = None,
        method: str = "average",
        metric: str = "euclidean",
        annotation_col: Optional[str] = None,
        title: Optional[str] = None
    ) -> None:
        """
        Clustered heatmap of the most variable features, rows z-scored.

        Args:
            dataset: Expression dataset without missing values
            output_path: Path to save figure
            n_features: Number of most variable features to show
            method: Linkage method for rows and columns
            metric: Distance metric for rows and columns
            annotation_col: Feature annotation column used for row labels
            title: Optional custom title
        """
        output_path = Path(output_path)
        logger.info(f"Generating clustered heatmap -> {output_path}")

        if n_features is None:
            n_features = self.heatmap_features

        dataset.validate_finite()
        variances = dataset.values.var(axis=1, ddof=1)
        order = np.argsort(-variances, kind="stable")
        # Constant rows cannot be z-scored
        order = order[variances[order] > 0][:n_features]
        if len(order) < 2 or dataset.n_samples < 2:
            raise ValueError(
                "Clustered heatmap needs at least 2 varying features and 2 samples"
            )

        subset = dataset.subset_features(order)
        frame = subset.to_frame()
        frame.index = subset.feature_labels(annotation_col)

        col_colors = None
        if dataset.labels is not None:
            class_colors = get_class_colors(np.unique(dataset.labels), self.config)
            col_colors = pd.Series(
                [class_colors[str(label)] for label in dataset.labels],
                index=frame.columns, name="class"
            )

        grid = sns.clustermap(
            frame,
            method=method,
            metric=metric,
            z_score=0,
            cmap="RdBu_r",
            center=0,
            col_colors=col_colors,
            yticklabels=len(order) <= 60,
            figsize=self.fig_sizes["wide"],
        )

        if title is None:
            title = f"Top {len(order)} Variable Features"
        grid.figure.suptitle(title, y=1.02)

        self._save(grid.figure, output_path)
        logger.info("  Clustered heatmap saved")
