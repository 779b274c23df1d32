"""
Cross-backend prediction engine.

Sends one query image to every backend slot of a ModelRegistry and collects
the answers into a single result keyed by backend kind. A backend that is
untrained or fails still appears in the result, as a zero-probability
placeholder, so consumers always see the complete set of kinds.
"""

import threading
import time
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

import numpy as np

from teachable.classification.backends import ModelKind
from teachable.classification.registry import ModelRegistry
from teachable.config import config
from teachable.errors import StateError, ValidationError
from teachable.utils.logging_config import ProgressLogger, get_logger

logger = get_logger(__name__)

NOT_TRAINED_LABEL = 'Model not trained'
ERROR_LABEL = 'Prediction Error'
INVALID_LABEL = 'Invalid prediction'


class ClassProbability(NamedTuple):
    class_name: str
    probability: float


class PredictionAggregator:
    """
    Run every registered backend on the same image.

    Only one predict_image call may run at a time on an aggregator; a
    second concurrent call raises StateError instead of waiting.

    Example:
        >>> aggregator = PredictionAggregator(registry, class_names=['cat', 'dog'])
        >>> results = aggregator.predict_image(pixels)
        >>> results['random_forest']['predictions'][0]
        ClassProbability(class_name='cat', probability=0.92)
        >>> aggregator.get_prediction_stats(results)['fastest_model']
        'random_forest'
    """

    def __init__(
        self,
        registry: ModelRegistry,
        class_names: Optional[Sequence[str]] = None,
        top_k: Optional[int] = None
    ):
        """
        Initialize prediction aggregator.

        Args:
            registry: Registry holding the backends to query
            class_names: Display names by class id (missing names become "Class <i>")
            top_k: Number of ranked predictions kept per backend (default: from config, 5)
        """
        self.registry = registry
        self.class_names = list(class_names) if class_names is not None else []
        self.top_k = int(top_k or config.get('inference.top_k', 5))
        self._in_flight = threading.Lock()

    @property
    def is_predicting(self) -> bool:
        return self._in_flight.locked()

    def predict_image(self, image) -> Dict[str, Dict[str, Any]]:
        """
        Predict one image with every backend.

        Args:
            image: Query forwarded to each backend's predict (pixel array,
                image path or encoded bytes)

        Returns:
            {kind value: {'predictions': [ClassProbability, ...],
                          'inference_time': milliseconds,
                          'error': message (only on failure)}}

        Raises:
            StateError: If another predict_image call is in flight
            ValidationError: If no image is given
        """
        if not self._in_flight.acquire(blocking=False):
            raise StateError("Prediction already in progress")

        try:
            if image is None:
                raise ValidationError("Invalid image: nothing to predict")

            predictions: Dict[str, Dict[str, Any]] = {}

            for kind in ModelKind:
                predictions[kind.value] = self._predict_with(kind, image)

            return predictions

        finally:
            self._in_flight.release()

    def _predict_with(self, kind: ModelKind, image) -> Dict[str, Any]:
        if not self.registry.is_trained(kind):
            return {
                'predictions': [ClassProbability(NOT_TRAINED_LABEL, 0.0)],
                'inference_time': 0.0
            }

        model = self.registry.get_model(kind)

        try:
            start = time.perf_counter()
            probabilities = model.predict(image)
            elapsed_ms = (time.perf_counter() - start) * 1000.0

            return {
                'predictions': self.format_predictions(probabilities, self.class_names),
                'inference_time': elapsed_ms
            }

        except Exception as e:
            # Fault isolation: one backend failing must not hide the others
            logger.error(f"Error predicting with {kind.value}: {e}")
            return {
                'predictions': [ClassProbability(ERROR_LABEL, 0.0)],
                'inference_time': 0.0,
                'error': str(e)
            }

    def format_predictions(
        self,
        probabilities,
        class_names: Optional[Sequence[str]] = None
    ) -> List[ClassProbability]:
        """
        Rank class probabilities.

        Args:
            probabilities: One probability per class id
            class_names: Names by class id; "Class <i>" where missing

        Returns:
            Top-k ClassProbability entries, highest first (stable for ties);
            a single 'Invalid prediction' entry for malformed input
        """
        if probabilities is None or isinstance(probabilities, (str, bytes, dict)):
            return [ClassProbability(INVALID_LABEL, 0.0)]

        try:
            values = np.asarray(probabilities, dtype=np.float64)
        except (TypeError, ValueError):
            return [ClassProbability(INVALID_LABEL, 0.0)]

        if values.ndim != 1:
            return [ClassProbability(INVALID_LABEL, 0.0)]

        names = list(class_names) if class_names is not None else []

        ranked = [
            ClassProbability(
                names[index] if index < len(names) and names[index] else f'Class {index}',
                float(probability)
            )
            for index, probability in enumerate(values)
        ]
        ranked.sort(key=lambda item: item.probability, reverse=True)

        return ranked[:self.top_k]

    def predict_batch(self, images: Sequence) -> List[Dict[str, Any]]:
        """
        Predict images one after another.

        A failing image yields {'error': message} in its position and does
        not stop the batch.

        Raises:
            ValidationError: If `images` is not a list or tuple
        """
        if not isinstance(images, (list, tuple)):
            raise ValidationError("Images must be a list")

        batch_predictions: List[Dict[str, Any]] = []
        progress = ProgressLogger(
            total=len(images),
            name='batch prediction',
            log_interval=50,
            logger=logger
        )

        for image in images:
            try:
                batch_predictions.append(self.predict_image(image))
            except Exception as e:
                logger.error(f"Error in batch prediction: {e}")
                batch_predictions.append({'error': str(e)})

            progress.update()

        progress.finish()
        return batch_predictions

    def get_prediction_stats(self, predictions: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
        """
        Summarize one predict_image result.

        Returns:
            Dictionary with:
            - total_models: Number of backend entries
            - trained_models: Entries whose top probability is above 0
            - average_confidence: Mean top-1 probability over those entries
            - fastest_model / slowest_model: By positive inference time;
              the first one seen wins ties
        """
        stats = {
            'total_models': 0,
            'trained_models': 0,
            'average_confidence': 0.0,
            'fastest_model': None,
            'slowest_model': None
        }

        total_confidence = 0.0
        min_time = float('inf')
        max_time = 0.0

        for model_kind, result in predictions.items():
            stats['total_models'] += 1

            ranked = result.get('predictions') or []
            top_probability = ranked[0][1] if ranked else 0.0
            if top_probability <= 0:
                continue

            stats['trained_models'] += 1
            total_confidence += top_probability

            inference_time = result.get('inference_time', 0.0)
            if inference_time > 0:
                if inference_time < min_time:
                    min_time = inference_time
                    stats['fastest_model'] = model_kind
                if inference_time > max_time:
                    max_time = inference_time
                    stats['slowest_model'] = model_kind

        if stats['trained_models'] > 0:
            stats['average_confidence'] = total_confidence / stats['trained_models']

        return stats

    def evaluate_all_models(
        self,
        images: Sequence,
        labels: Sequence[int]
    ) -> Dict[str, Dict[str, Any]]:
        """
        Evaluate every trained backend and record results in the registry.

        A failing backend is reported as {'accuracy': 0.0, 'error': message}
        without affecting the others.

        Raises:
            ValidationError: If images or labels are missing
        """
        if images is None or labels is None:
            raise ValidationError("Invalid test data")

        evaluations: Dict[str, Dict[str, Any]] = {}

        for kind in ModelKind:
            if not self.registry.is_trained(kind):
                evaluations[kind.value] = {'accuracy': 0.0, 'error': 'Model not trained'}
                continue

            try:
                logger.info(f"Evaluating {kind.value}...")
                evaluation = self.registry.get_model(kind).evaluate(images, labels)
                evaluations[kind.value] = evaluation
                self.registry.set_evaluation_results(kind, evaluation)
                logger.info(f"{kind.value} evaluation: {evaluation}")

            except Exception as e:
                logger.error(f"Error evaluating {kind.value}: {e}")
                evaluations[kind.value] = {'accuracy': 0.0, 'error': str(e)}

        return evaluations
