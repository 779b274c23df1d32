"""
Random-forest classification and multi-backend prediction.

Modules:
    dataset: Immutable training data and the image-folder supplier
    tree: Decision tree induction and inference
    forest: Bootstrap-aggregated forest training and voting
    backends: Backend contract, backend kinds, random-forest backend
    registry: One model slot per backend kind, saved-model ledger
    inference: Cross-backend prediction with fault isolation
    evaluation: Confusion matrix and precision/recall/F1 metrics

Example:
    >>> from teachable.classification import (
    ...     ModelRegistry,
    ...     PredictionAggregator,
    ...     RandomForestBackend,
    ...     calculate_metrics,
    ...     generate_confusion_matrix
    ... )
    >>>
    >>> backend = RandomForestBackend()
    >>> backend.train(images, labels)
    >>>
    >>> registry = ModelRegistry()
    >>> registry.set_model('random_forest', backend)
    >>>
    >>> aggregator = PredictionAggregator(registry, class_names=['cat', 'dog'])
    >>> results = aggregator.predict_image(query)
    >>>
    >>> matrix = generate_confusion_matrix(backend.predict_batch(test_images), test_labels, ['cat', 'dog'])
    >>> metrics = calculate_metrics(matrix)
"""

from teachable.classification.dataset import (
    Dataset,
    ImageFolderSupplier,
    LabeledSample,
    train_test_split
)
from teachable.classification.tree import DecisionTree, Leaf, Split, classify, induce
from teachable.classification.forest import (
    Forest,
    ForestPredictor,
    ForestTrainer,
    TrainingProgress
)
from teachable.classification.backends import (
    ClassifierBackend,
    ModelKind,
    RandomForestBackend,
    UntrainedModel
)
from teachable.classification.registry import ModelRegistry
from teachable.classification.inference import ClassProbability, PredictionAggregator
from teachable.classification.evaluation import (
    Metrics,
    calculate_metrics,
    generate_confusion_matrix
)

__all__ = [
    'ClassProbability',
    'ClassifierBackend',
    'Dataset',
    'DecisionTree',
    'Forest',
    'ForestPredictor',
    'ForestTrainer',
    'ImageFolderSupplier',
    'LabeledSample',
    'Leaf',
    'Metrics',
    'ModelKind',
    'ModelRegistry',
    'PredictionAggregator',
    'RandomForestBackend',
    'Split',
    'TrainingProgress',
    'UntrainedModel',
    'calculate_metrics',
    'classify',
    'generate_confusion_matrix',
    'induce',
    'train_test_split',
]
