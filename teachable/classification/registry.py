"""
Registry of trained models, one slot per backend kind.

The registry is an explicit object handed to whoever needs it (the
prediction aggregator, scripts); there is no process-wide model state.
"""

import copy
from typing import Any, Dict, List, Optional

from teachable.classification.backends import ModelKind, UntrainedModel
from teachable.errors import StateError
from teachable.utils.logging_config import get_logger

logger = get_logger(__name__)


class ModelRegistry:
    """
    Holds zero or one model per ModelKind plus evaluation results and a
    ledger of saved-model descriptors.

    Accessors hand out copies of the internal result maps and ledger.

    Example:
        >>> registry = ModelRegistry()
        >>> registry.set_model('random_forest', backend)
        >>> registry.is_trained('random_forest')
        True
        >>> registry.save_model('random_forest')
        {'kind': 'random_forest', 'timestamp': '...', 'trained_at': '...', 'accuracy': 0.98, 'tree_count': 50, 'id': 0}
    """

    def __init__(self):
        self._models: Dict[ModelKind, Optional[Any]] = {kind: None for kind in ModelKind}
        self._evaluation_results: Dict[ModelKind, Dict[str, Any]] = {}
        self._saved_models: List[Dict[str, Any]] = []
        self._next_saved_id = 0
        self._training = False

    @staticmethod
    def kinds() -> List[ModelKind]:
        """All backend kinds in reporting order."""
        return list(ModelKind)

    def set_model(self, kind, model):
        """
        Install a model, releasing the previous occupant of the slot.

        Args:
            kind: ModelKind or its string value
            model: Backend object, or None to empty the slot

        Raises:
            ValidationError: For an unknown kind
        """
        kind = ModelKind.parse(kind)

        previous = self._models[kind]
        if previous is not None and previous is not model:
            dispose = getattr(previous, 'dispose', None)
            if callable(dispose):
                dispose()
            logger.info(f"Released previous {kind.value} model")

        self._models[kind] = model

    def get_model(self, kind):
        """
        Installed model, or an UntrainedModel stub for an empty slot.

        Raises:
            ValidationError: For an unknown kind
        """
        kind = ModelKind.parse(kind)
        model = self._models[kind]
        return model if model is not None else UntrainedModel(kind)

    def is_trained(self, kind) -> bool:
        """Whether the slot holds a trained model; False for unknown kinds."""
        try:
            kind = ModelKind.parse(kind)
        except ValueError:
            return False

        model = self._models[kind]
        return model is not None and getattr(model, 'is_trained', False) is True

    def set_evaluation_results(self, kind, results: Dict[str, Any]):
        kind = ModelKind.parse(kind)
        self._evaluation_results[kind] = copy.deepcopy(dict(results))

    def get_evaluation_results(self, kind) -> Optional[Dict[str, Any]]:
        kind = ModelKind.parse(kind)
        results = self._evaluation_results.get(kind)
        return copy.deepcopy(results) if results is not None else None

    def get_all_evaluation_results(self) -> Dict[str, Dict[str, Any]]:
        return {
            kind.value: copy.deepcopy(results)
            for kind, results in self._evaluation_results.items()
        }

    def save_model(self, kind) -> Dict[str, Any]:
        """
        Append the model's descriptor to the saved-model ledger.

        Returns:
            Copy of the stored descriptor, including its ledger id

        Raises:
            ValidationError: For an unknown kind
            StateError: If the slot holds no trained model
        """
        kind = ModelKind.parse(kind)
        if not self.is_trained(kind):
            raise StateError(f"Model {kind.value} is not trained")

        descriptor = dict(self._models[kind].summarize())
        descriptor['id'] = self._next_saved_id
        self._next_saved_id += 1
        self._saved_models.append(descriptor)

        logger.info(f"Model {kind.value} saved: {descriptor}")
        return dict(descriptor)

    def get_saved_models(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self._saved_models)

    def get_training_status(self) -> Dict[str, bool]:
        return {kind.value: self.is_trained(kind) for kind in ModelKind}

    def get_trained_models_count(self) -> int:
        return sum(self.get_training_status().values())

    def set_training_status(self, training: bool):
        self._training = bool(training)

    def is_any_model_training(self) -> bool:
        return self._training

    def reset(self):
        """Dispose every model and clear evaluation results (the ledger is kept)."""
        for kind in ModelKind:
            self.set_model(kind, None)

        self._evaluation_results = {}
        self._training = False

        logger.info("Model registry reset")

    def get_stats(self) -> Dict[str, Any]:
        return {
            'trained_models': self.get_trained_models_count(),
            'saved_models': len(self._saved_models),
            'evaluation_results': self.get_all_evaluation_results()
        }
