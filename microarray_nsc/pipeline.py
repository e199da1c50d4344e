"""
Nearest shrunken centroid analysis pipeline.

Runs the complete workflow on a configured dataset:
load -> preprocess -> explore -> cross-validate -> select threshold ->
train final model -> report -> predict an external dataset -> plot.

Every step is a method so callers (the CLI, notebooks, tests) can run the
steps they need and reuse intermediate results.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import joblib
import numpy as np
import pandas as pd

from . import __version__
from .data_loaders import ExpressionDataLoader, ExpressionDataset
from .exploration import hierarchical_clustering, principal_components, sample_distances
from .models import (
    ClassifierEvaluator,
    CrossValidationResult,
    NearestShrunkenCentroid,
    ThresholdCrossValidator,
    class_error_rates,
    confusion_table,
    cv_curve_frame,
    list_genes,
    overall_error,
    select_threshold,
    shrunken_centroids_table,
)
from .preprocessing import ExpressionTransformer, VarianceSelector
from .utils.config import Config
from .visualization import PlotGenerator

logger = logging.getLogger(__name__)

MODEL_FILENAME = "nsc_model.joblib"


def save_model(
    estimator: NearestShrunkenCentroid,
    feature_ids,
    output_path: Union[str, Path],
    imputer_means: Optional[pd.Series] = None,
    config: Optional[Config] = None
) -> Path:
    """
    Persist a fitted classifier together with what is needed to apply it.

    Args:
        estimator: Fitted classifier
        feature_ids: Training feature order
        output_path: Destination file
        imputer_means: Training means used to fill missing values
        config: Configuration snapshot stored for provenance

    Returns:
        Path of the written file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    bundle = {
        "version": __version__,
        "estimator": estimator,
        "feature_ids": [str(f) for f in feature_ids],
        "imputer_means": imputer_means,
        "config": config.to_dict() if config is not None else None,
    }
    joblib.dump(bundle, output_path)
    logger.info(f"Saved model to {output_path}")
    return output_path


def load_model(model_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load a bundle written by ``save_model``.

    Returns:
        Dictionary with estimator, feature_ids, imputer_means, config and version
    """
    model_path = Path(model_path)
    if not model_path.exists():
        raise FileNotFoundError(f"Model file not found: {model_path}")
    bundle = joblib.load(model_path)
    logger.info(
        f"Loaded model from {model_path} ({len(bundle['feature_ids'])} features, "
        f"threshold={bundle['estimator'].threshold:.4f})"
    )
    return bundle


class AnalysisPipeline:
    """
    Main pipeline class for shrunken centroid classification.

    Encapsulates all steps: data loading, preprocessing, exploration,
    cross-validation, training, prediction and visualization.
    """

    def __init__(self, config: Config):
        """
        Initialize pipeline with configuration.

        Args:
            config: Loaded configuration
        """
        self.config = config
        self.model_params = config.model_params
        self.preprocessing = config.preprocessing

        # Initialize components
        self.loader = ExpressionDataLoader(config)
        self.transformer = ExpressionTransformer(
            floor=self.preprocessing.get("floor"),
            ceiling=self.preprocessing.get("ceiling"),
        )
        self.selector: Optional[VarianceSelector] = None
        self.evaluator = ClassifierEvaluator()
        self._plotter: Optional[PlotGenerator] = None

        self.plot_format = config.viz_params.get("format", "pdf")
        config.ensure_output_dirs()

    @property
    def plotter(self) -> PlotGenerator:
        # Created on first use so runs without plots never touch matplotlib state
        if self._plotter is None:
            self._plotter = PlotGenerator(self.config)
        return self._plotter

    def _table_path(self, filename: str) -> Path:
        return self.config.get_output_path(filename, "tables")

    def _plot_path(self, name: str) -> Path:
        return self.config.get_output_path(f"{name}.{self.plot_format}", "plots")

    def load_data(self) -> Tuple[ExpressionDataset, Optional[ExpressionDataset]]:
        """
        Load the training dataset and, if configured, the external test dataset.

        Returns:
            Tuple of (training dataset, test dataset or None)
        """
        sample_col = self.config.get_column("sample_id")
        label_col = self.config.get_column("label")
        feature_col = self.config.get_column("feature_id")
        annotation_path = self.config.get_data_path("annotations")

        expression_path = self.config.get_data_path("expression")
        if expression_path is None:
            raise ValueError("No expression file configured")

        logger.info(f"Loading training data from {expression_path}...")
        train = self.loader.load_dataset(
            expression_path,
            metadata_path=self.config.get_data_path("metadata"),
            sample_col=sample_col,
            label_col=label_col,
            annotation_path=annotation_path,
            feature_col=feature_col,
            label_mapping=self.config.label_mapping,
        )
        train.require_labels()

        test = None
        test_path = self.config.get_data_path("test_expression")
        if test_path is not None:
            logger.info(f"Loading external test data from {test_path}...")
            test = self.loader.load_dataset(
                test_path,
                metadata_path=self.config.get_data_path("test_metadata"),
                sample_col=sample_col,
                label_col=label_col,
                annotation_path=annotation_path,
                feature_col=feature_col,
                label_mapping=self.config.label_mapping,
                require_labels=False,
            )
        return train, test

    def preprocess(
        self,
        train: ExpressionDataset,
        test: Optional[ExpressionDataset] = None
    ) -> Tuple[ExpressionDataset, Optional[ExpressionDataset]]:
        """
        Log transform, impute and filter the training data, and prepare the
        test data identically with training-derived parameters.

        Returns:
            Tuple of (prepared train, prepared test or None)
        """
        logger.info("Preprocessing expression data...")
        train, test = self.transformer.prepare_for_training(
            train, test, log_transform=self.preprocessing.get("log_transform", False)
        )

        top_n = self.preprocessing.get("top_variance")
        if top_n and top_n < train.n_features:
            self.selector = VarianceSelector(top_n=top_n)
            train = self.selector.fit_transform(train)
            if test is not None:
                test = self.selector.transform(test)

        train.validate_finite()
        return train, test

    def explore(self, dataset: ExpressionDataset) -> Dict[str, Any]:
        """
        Unsupervised overview of the training samples.

        Writes the sample distance matrix, hierarchical cluster assignments
        and principal component scores.

        Returns:
            Dictionary with distances, linkage, clusters, pca_scores and
            explained_variance
        """
        logger.info("Exploring sample structure...")
        n_classes = len(np.unique(dataset.labels))

        distances = sample_distances(dataset, metric="correlation")
        distances.to_csv(self._table_path("sample_distances.csv"))

        tree, clusters = hierarchical_clustering(
            dataset, method="average", metric="correlation", n_clusters=n_classes
        )
        cluster_table = pd.DataFrame({
            "sample_id": clusters.index,
            "cluster": clusters.values,
            "class": dataset.labels,
        })
        cluster_table.to_csv(self._table_path("sample_clusters.csv"), index=False)
        logger.info(
            "Clusters vs classes:\n"
            + pd.crosstab(cluster_table["cluster"], cluster_table["class"]).to_string()
        )

        n_components = min(2, dataset.n_samples, dataset.n_features)
        scores, explained = principal_components(dataset, n_components=n_components)
        scores.insert(0, "class", dataset.labels)
        scores.to_csv(self._table_path("pca_scores.csv"), index_label="sample_id")

        return {
            "distances": distances,
            "linkage": tree,
            "clusters": clusters,
            "pca_scores": scores.drop(columns="class"),
            "explained_variance": explained,
        }

    def cross_validate(self, dataset: ExpressionDataset) -> CrossValidationResult:
        """
        Cross-validate the classifier over the threshold grid.

        A configured fixed threshold is added to the grid so the held-out
        predictions reported for it are exact.

        Returns:
            CrossValidationResult
        """
        validator = ThresholdCrossValidator(
            n_folds=self.model_params["cv_folds"],
            random_state=self.model_params["random_state"],
            n_jobs=self.model_params.get("n_jobs", 1),
            s0_percentile=self.model_params["s0_percentile"],
            prior=self.model_params.get("prior"),
        )
        fixed = self.model_params.get("threshold")
        cv_result = validator.cross_validate(
            dataset.X,
            dataset.require_labels(),
            n_thresholds=self.model_params["n_thresholds"],
            extra_thresholds=None if fixed is None else [float(fixed)],
        )
        cv_curve_frame(cv_result).to_csv(self._table_path("cv_curve.csv"), index=False)
        return cv_result

    def choose_threshold(self, cv_result: CrossValidationResult) -> float:
        """Configured threshold if given, otherwise the configured selection rule."""
        fixed = self.model_params.get("threshold")
        if fixed is not None:
            logger.info(f"Using configured threshold {float(fixed):.4f}")
            return float(fixed)
        return select_threshold(cv_result, rule=self.model_params["selection_rule"])

    def train_final_model(
        self,
        dataset: ExpressionDataset,
        threshold: float
    ) -> NearestShrunkenCentroid:
        """Fit the classifier on all training samples at the chosen threshold."""
        estimator = NearestShrunkenCentroid(
            threshold=threshold,
            prior=self.model_params.get("prior"),
            s0_percentile=self.model_params["s0_percentile"],
        )
        estimator.fit(dataset.X, dataset.require_labels())
        logger.info(f"Final model: {estimator.model_}")
        return estimator

    def report(
        self,
        estimator: NearestShrunkenCentroid,
        dataset: ExpressionDataset,
        cv_result: CrossValidationResult
    ) -> Dict[str, Any]:
        """
        Write the gene list, shrunken centroids and cross-validated confusion table.

        Returns:
            Dictionary with gene_list, centroids, cv_confusion and cv_error
        """
        model = estimator.model_
        annotation_col = self.config.get_column("annotation")
        annotations = None
        if (
            dataset.feature_annotations is not None
            and annotation_col in dataset.feature_annotations.columns
        ):
            annotations = dataset.feature_annotations[annotation_col].to_numpy(dtype=object)

        genes = list_genes(model, dataset.feature_ids, annotations=annotations)
        genes.to_csv(self._table_path("gene_list.csv"), index=False)
        logger.info(f"Gene list: {len(genes)} retained features")

        centroids = shrunken_centroids_table(model, dataset.feature_ids)
        centroids.to_csv(self._table_path("shrunken_centroids.csv"))

        y_cv = cv_result.predictions_at(estimator.threshold)
        cv_table = confusion_table(cv_result.y_true, y_cv, classes=cv_result.classes)
        cv_table.to_csv(self._table_path("cv_confusion.csv"))
        cv_error = overall_error(cv_table)
        logger.info(
            f"Cross-validated confusion at threshold {estimator.threshold:.4f} "
            f"(error {cv_error:.3f}):\n{cv_table.to_string()}"
        )

        probabilities = cv_result.probabilities_at(estimator.threshold)
        cv_predictions = pd.DataFrame({
            "sample_id": dataset.sample_ids,
            "true": cv_result.y_true,
            "predicted": y_cv,
        })
        for k, cls in enumerate(cv_result.classes):
            cv_predictions[f"prob_{cls}"] = probabilities[:, k]
        cv_predictions.to_csv(self._table_path("cv_predictions.csv"), index=False)

        save_model(
            estimator,
            dataset.feature_ids,
            self.config.get_output_path(MODEL_FILENAME, "models"),
            imputer_means=self.transformer.imputer_means_,
            config=self.config,
        )

        return {
            "gene_list": genes,
            "centroids": centroids,
            "cv_confusion": cv_table,
            "cv_error": cv_error,
        }

    def predict_external(
        self,
        estimator: NearestShrunkenCentroid,
        test: ExpressionDataset
    ) -> Dict[str, Any]:
        """
        Predict the external dataset and, where it is labelled, evaluate.

        Returns:
            Dictionary with predictions and, when labels are available,
            the evaluation metrics from ClassifierEvaluator
        """
        logger.info(f"Predicting {test.n_samples} external samples...")
        X_test = test.X
        y_pred = estimator.predict(X_test)
        y_prob = estimator.predict_proba(X_test)

        predictions = pd.DataFrame({"sample_id": test.sample_ids, "predicted": y_pred})
        for k, cls in enumerate(estimator.classes_):
            predictions[f"prob_{cls}"] = y_prob[:, k]

        output = {"predictions": predictions}
        if test.labels is not None:
            predictions.insert(1, "true", test.labels)
            labelled = np.flatnonzero(pd.notna(test.labels))
            known = np.isin(test.labels[labelled], estimator.classes_)
            if (~known).any():
                logger.warning(
                    f"{int((~known).sum())} test samples have labels unknown to the model "
                    "and are not evaluated"
                )
            labelled = labelled[known]

            if len(labelled) > 0:
                metrics = self.evaluator.evaluate(
                    estimator, X_test[labelled], test.labels[labelled]
                )
                metrics["confusion"].to_csv(self._table_path("test_confusion.csv"))
                self.evaluator.to_dataframe({"NSC": metrics}).to_csv(
                    self._table_path("test_performance.csv"), index=False
                )
                logger.info(
                    f"External accuracy: {metrics['accuracy']:.4f} "
                    f"({len(labelled)} labelled samples)\n"
                    f"{metrics['confusion'].to_string()}\n"
                    f"Per-class error:\n{class_error_rates(metrics['confusion']).to_string()}"
                )
                output["metrics"] = metrics
                output["y_true"] = test.labels[labelled]

        predictions.to_csv(self._table_path("test_predictions.csv"), index=False)
        return output

    def plot_results(
        self,
        dataset: ExpressionDataset,
        estimator: NearestShrunkenCentroid,
        cv_result: CrossValidationResult,
        exploration: Optional[Dict[str, Any]] = None,
        external: Optional[Dict[str, Any]] = None
    ) -> None:
        """Generate all figures for a completed run."""
        self.plotter.plot_cv_curve(
            cv_result, self._plot_path("cv_curve"), selected_threshold=estimator.threshold
        )

        annotation_col = self.config.get_column("annotation")
        self.plotter.plot_shrunken_centroids(
            estimator.model_,
            dataset.feature_labels(annotation_col),
            self._plot_path("shrunken_centroids"),
        )

        cv_table = confusion_table(
            cv_result.y_true,
            cv_result.predictions_at(estimator.threshold),
            classes=cv_result.classes,
        )
        self.plotter.plot_confusion(
            cv_table, self._plot_path("cv_confusion"),
            title="Cross-Validated Confusion Table"
        )

        if exploration is not None and exploration["pca_scores"].shape[1] >= 2:
            self.plotter.plot_pca(
                exploration["pca_scores"],
                exploration["explained_variance"],
                dataset.labels,
                self._plot_path("pca"),
                title=f"PCA (n = {dataset.n_features} features)"
            )
        self.plotter.plot_cluster_heatmap(
            dataset, self._plot_path("cluster_heatmap"), annotation_col=annotation_col
        )

        if external is not None and "metrics" in external:
            metrics = external["metrics"]
            self.plotter.plot_confusion(
                metrics["confusion"], self._plot_path("test_confusion"),
                title="External Test Confusion Table"
            )
            roc_data = self.evaluator.get_roc_data({"NSC": metrics}, external["y_true"])
            if roc_data:
                self.plotter.plot_roc_curves(roc_data, self._plot_path("test_roc"))

    def run_full_pipeline(
        self,
        explore: bool = True,
        plots: bool = True
    ) -> Dict[str, Any]:
        """
        Run the complete analysis pipeline.

        Args:
            explore: Run the unsupervised exploration step
            plots: Generate figures

        Returns:
            Dictionary with the intermediate results of every step
        """
        logger.info("=" * 60)
        logger.info("Nearest Shrunken Centroid Pipeline")
        logger.info("=" * 60)

        logger.info("[Step 1] Loading data...")
        train, test = self.load_data()

        logger.info("[Step 2] Preprocessing...")
        train, test = self.preprocess(train, test)

        exploration = None
        if explore:
            logger.info("[Step 3] Exploration...")
            exploration = self.explore(train)

        logger.info("[Step 4] Cross-validation...")
        cv_result = self.cross_validate(train)
        threshold = self.choose_threshold(cv_result)

        logger.info("[Step 5] Training final model...")
        estimator = self.train_final_model(train, threshold)
        reports = self.report(estimator, train, cv_result)

        external = None
        if test is not None:
            logger.info("[Step 6] External prediction...")
            external = self.predict_external(estimator, test)

        if plots:
            logger.info("[Step 7] Plotting...")
            self.plot_results(train, estimator, cv_result, exploration, external)

        logger.info("=" * 60)
        logger.info("Pipeline completed successfully!")
        logger.info(f"Results: {self.config.output_dir}")
        logger.info("=" * 60)

        return {
            "train": train,
            "test": test,
            "exploration": exploration,
            "cv_result": cv_result,
            "threshold": threshold,
            "estimator": estimator,
            "reports": reports,
            "external": external,
        }
