#!/usr/bin/env python3
"""
Train, evaluate and export a random-forest image classifier.

This script:
1. Loads a class-per-directory image dataset
2. Splits it per class into training and test images
3. Trains the random forest backend with progress logging
4. Registers the model and appends it to the saved-model ledger
5. Evaluates every registered backend on the test images
6. Exports predictions, metrics and the confusion matrix (CSV, Excel, PNG)
7. Optionally predicts extra query images and prints the top classes

Usage:
    python scripts/train_forest.py --dataset data/datasets/fruit
    python scripts/train_forest.py --dataset data/datasets/fruit --trees 100 --seed 42
    python scripts/train_forest.py --dataset data/datasets/fruit --predict a.png b.jpg
"""

import argparse
import json
import sys
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from teachable.classification import (
    ForestTrainer,
    ImageFolderSupplier,
    ModelKind,
    ModelRegistry,
    PredictionAggregator,
    RandomForestBackend,
    calculate_metrics,
    generate_confusion_matrix,
    train_test_split
)
from teachable.config import config
from teachable.errors import ClassifierError, ValidationError
from teachable.export import CSVExporter, ExcelExporter
from teachable.utils.logging_config import setup_logging
from teachable.utils.validation import validate_image_file
from teachable.visualization.confusion_matrix import ConfusionMatrixVisualizer

logger = setup_logging('teachable.scripts.train_forest')


def parse_arguments():
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description='Train and evaluate a random-forest image classifier',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train on a dataset with default settings
  python scripts/train_forest.py --dataset data/datasets/fruit

  # Reproducible run with more trees
  python scripts/train_forest.py --dataset data/datasets/fruit --trees 100 --seed 42

  # Also classify some query images
  python scripts/train_forest.py --dataset data/datasets/fruit --predict query1.png query2.png
        """
    )

    parser.add_argument(
        '--dataset',
        type=Path,
        required=True,
        help='Directory with one sub-directory of images per class'
    )

    parser.add_argument(
        '--output-dir',
        type=Path,
        default=Path(config.get('paths.reports', './data/reports')),
        help='Directory for reports (default: paths.reports from config)'
    )

    parser.add_argument(
        '--trees',
        type=int,
        default=config.get('forest.num_trees', 50),
        help='Number of trees (default: %(default)s)'
    )

    parser.add_argument(
        '--max-depth',
        type=int,
        default=config.get('forest.max_depth', 10),
        help='Maximum tree depth (default: %(default)s)'
    )

    parser.add_argument(
        '--test-ratio',
        type=float,
        default=config.get('evaluation.test_ratio', 0.2),
        help='Share of each class held out for testing (default: %(default)s)'
    )

    parser.add_argument(
        '--seed',
        type=int,
        default=config.get('forest.seed'),
        help='Random seed for the split and the forest'
    )

    parser.add_argument(
        '--deadline',
        type=float,
        default=config.get('forest.deadline_seconds'),
        help='Abort training after this many seconds'
    )

    parser.add_argument(
        '--predict',
        type=Path,
        nargs='+',
        help='Query images to classify after training'
    )

    parser.add_argument(
        '--no-plot',
        action='store_true',
        help='Skip the confusion matrix plot'
    )

    return parser.parse_args()


def validate_arguments(args):
    """Validate command line arguments."""
    if not args.dataset.is_dir():
        logger.error(f"Dataset directory not found: {args.dataset}")
        sys.exit(1)

    if args.trees < 1:
        logger.error(f"--trees must be at least 1, got {args.trees}")
        sys.exit(1)

    if not 0.0 <= args.test_ratio < 1.0:
        logger.error(f"--test-ratio must be in [0, 1), got {args.test_ratio}")
        sys.exit(1)

    for query in args.predict or []:
        try:
            validate_image_file(query)
        except (FileNotFoundError, ValidationError) as e:
            logger.error(f"Invalid query image: {e}")
            sys.exit(1)

    logger.info("Arguments validated:")
    logger.info(f"  Dataset: {args.dataset}")
    logger.info(f"  Output: {args.output_dir}")
    logger.info(f"  Trees: {args.trees}")
    logger.info(f"  Max depth: {args.max_depth}")
    logger.info(f"  Test ratio: {args.test_ratio}")
    logger.info(f"  Seed: {args.seed}")
    logger.info("")


def train_backend(args, train_paths, train_labels, rng):
    """
    Train the random forest backend.

    Returns:
        Tuple of (backend, training results)
    """
    logger.info("=" * 70)
    logger.info("TRAINING RANDOM FOREST")
    logger.info("=" * 70)

    trainer = ForestTrainer(
        num_trees=args.trees,
        max_depth=args.max_depth,
        rng=rng,
        deadline_seconds=args.deadline
    )
    backend = RandomForestBackend(trainer=trainer)

    last_reported = [-10.0]

    def report(percent, stage):
        if percent - last_reported[0] >= 10 or percent >= 100:
            last_reported[0] = percent
            logger.info(
                f"  {percent:5.1f}% {stage['stage']} "
                f"({stage['current']}/{stage['total']})"
            )

    results = backend.train(train_paths, train_labels, progress=report)

    oob = results['oob_accuracy']
    logger.info(f"Training accuracy: {results['accuracy']:.3f}")
    logger.info(f"Out-of-bag accuracy: {oob:.3f}" if oob is not None else "Out-of-bag accuracy: n/a")
    logger.info("")

    return backend, results


def evaluate(args, aggregator, backend, test_paths, test_labels, class_names):
    """
    Evaluate all backends and export reports.

    Returns:
        Metrics of the random forest on the test images
    """
    logger.info("=" * 70)
    logger.info("EVALUATION")
    logger.info("=" * 70)

    evaluations = aggregator.evaluate_all_models(test_paths, test_labels)

    probabilities = backend.predict_batch(test_paths)
    matrix = generate_confusion_matrix(probabilities, test_labels, class_names)
    metrics = calculate_metrics(matrix)

    logger.info(f"Test accuracy: {metrics.accuracy:.3f}")
    logger.info(f"Macro F1: {metrics.macro_f1:.3f}")
    for row in metrics.to_dataframe(class_names).itertuples(index=False):
        logger.info(
            f"  {row[0]}: precision={row[1]:.3f} recall={row[2]:.3f} "
            f"f1={row[3]:.3f} support={row[4]}"
        )
    logger.info("")

    args.output_dir.mkdir(parents=True, exist_ok=True)
    formats = config.get('export.formats', ['csv', 'excel'])

    if 'csv' in formats:
        csv_exporter = CSVExporter()
        csv_exporter.export_metrics(metrics, class_names, args.output_dir / 'metrics.csv')
        csv_exporter.export_confusion_matrix(
            matrix, class_names, args.output_dir / 'confusion_matrix.csv'
        )

    if 'excel' in formats:
        ExcelExporter().export_evaluation_report(
            metrics,
            matrix,
            class_names,
            args.output_dir / 'evaluation_report.xlsx',
            evaluations=evaluations,
            saved_models=aggregator.registry.get_saved_models()
        )

    if not args.no_plot and config.get('export.plot_confusion_matrix', True):
        fig = ConfusionMatrixVisualizer().plot_confusion_matrix(
            matrix,
            class_names,
            output_path=args.output_dir / 'confusion_matrix.png'
        )
        if fig is not None:
            plt.close(fig)

    return metrics


def predict_queries(args, aggregator):
    """Classify query images and print the top predictions per backend."""
    logger.info("=" * 70)
    logger.info("PREDICTION")
    logger.info("=" * 70)

    batch = aggregator.predict_batch(list(args.predict))

    for query, result in zip(args.predict, batch):
        if 'error' in result:
            logger.error(f"{query.name}: {result['error']}")
            continue

        ranked = result[ModelKind.RANDOM_FOREST.value]['predictions']
        top = ', '.join(f"{p.class_name} ({p.probability:.2f})" for p in ranked[:3])
        logger.info(f"{query.name}: {top}")

    CSVExporter().export_predictions(
        batch,
        args.output_dir / 'predictions.csv',
        image_ids=[query.name for query in args.predict]
    )
    logger.info("")


def main():
    """Main execution function."""
    args = parse_arguments()

    logger.info("=" * 70)
    logger.info("RANDOM FOREST IMAGE CLASSIFIER")
    logger.info("=" * 70)
    logger.info("")

    validate_arguments(args)

    rng = np.random.default_rng(args.seed)

    try:
        paths, labels, class_names = ImageFolderSupplier(args.dataset).load()
        (train_paths, train_labels), (test_paths, test_labels) = train_test_split(
            paths, labels, test_ratio=args.test_ratio, rng=rng
        )
        logger.info(f"Training images: {len(train_paths)}")
        logger.info(f"Test images: {len(test_paths)}")
        logger.info("")

        backend, _ = train_backend(args, train_paths, train_labels, rng)

        registry = ModelRegistry()
        registry.set_model(ModelKind.RANDOM_FOREST, backend)
        descriptor = registry.save_model(ModelKind.RANDOM_FOREST)

        args.output_dir.mkdir(parents=True, exist_ok=True)
        descriptor_file = args.output_dir / 'saved_models.json'
        with open(descriptor_file, 'w', encoding='utf-8') as f:
            json.dump(
                {'class_names': class_names, 'models': registry.get_saved_models()},
                f,
                indent=2
            )
        logger.info(f"Saved model descriptor: {descriptor} -> {descriptor_file}")
        logger.info("")

        aggregator = PredictionAggregator(registry, class_names=class_names)

        if test_paths:
            evaluate(args, aggregator, backend, test_paths, test_labels, class_names)
        else:
            logger.warning("No test images held out, skipping evaluation")

        if args.predict:
            predict_queries(args, aggregator)

    except ClassifierError as e:
        logger.error(f"Pipeline failed: {e}")
        return 1

    logger.info("Pipeline completed successfully!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
