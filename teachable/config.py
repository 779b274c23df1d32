"""
YAML settings for the teachable image classifier.

Values may refer to environment variables (``${HOME}``) or to other keys
(``${paths.data_root}``); both are expanded once at load time. Entries under
``paths`` are made absolute relative to the project root.
"""

import os
import re
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"
PROJECT_ROOT = Path(__file__).parent.parent

REFERENCE = re.compile(r'\$\{([^}]+)\}')
MAX_REFERENCE_DEPTH = 10

_MISSING = object()


def _lookup(tree: Any, dotted_key: str) -> Any:
    """Walk a nested dict along 'a.b.c'; _MISSING when any step is absent."""
    node = tree
    for part in dotted_key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


class Config:
    """
    Classifier settings loaded from YAML or built from a dict.

    Example:
        >>> config = Config()
        >>> config.get('forest.num_trees')
        50
        >>> config.get('forest.unknown', 7)
        7
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        config_dict: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            config_path: YAML file to read (default: the bundled default_config.yaml)
            config_dict: In-memory settings; wins over config_path when given
        """
        if config_dict is not None:
            self.config_path = None
            raw = dict(config_dict)
        else:
            self.config_path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f) or {}

        self.config = self._expand(raw, raw)
        self._absolutize_paths()

    def _expand(self, node: Any, root: Dict) -> Any:
        if isinstance(node, dict):
            return {key: self._expand(value, root) for key, value in node.items()}
        if isinstance(node, list):
            return [self._expand(item, root) for item in node]
        if isinstance(node, str):
            return self._expand_string(node, root)
        return node

    def _expand_string(self, value: str, root: Dict, depth: int = 0) -> str:
        """
        Substitute every ``${...}`` in `value`.

        Environment variables take precedence over keys. Key references are
        followed transitively; unknown names are left untouched.
        """
        if depth > MAX_REFERENCE_DEPTH:
            raise ValueError(f"Circular reference while expanding {value!r}")

        def substitute(match):
            name = match.group(1)

            if name in os.environ:
                return os.environ[name]
            if '.' not in name:
                return match.group(0)

            target = _lookup(root, name)
            if target is _MISSING:
                return match.group(0)
            if isinstance(target, str) and target != value:
                return self._expand_string(target, root, depth + 1)
            return str(target)

        return REFERENCE.sub(substitute, value)

    def _absolutize_paths(self):
        paths = self.config.get('paths')
        if not isinstance(paths, dict):
            return

        for key, value in paths.items():
            if isinstance(value, str) and '${' not in value:
                path = Path(value)
                paths[key] = str(path if path.is_absolute() else (PROJECT_ROOT / path).resolve())

    def get(self, key: str, default: Any = None) -> Any:
        """Value at dotted `key` (e.g. 'forest.max_depth'), or `default`."""
        value = _lookup(self.config, key)
        return default if value is _MISSING else value

    def set(self, key: str, value: Any):
        """Set dotted `key`, creating intermediate sections as needed."""
        *sections, leaf = key.split('.')
        node = self.config
        for section in sections:
            if not isinstance(node.get(section), dict):
                node[section] = {}
            node = node[section]
        node[leaf] = value

    def update(self, updates: Dict[str, Any]):
        """Merge nested `updates` into the settings, keeping sibling keys."""
        _merge(self.config, updates)

    def save(self, output_path: Optional[str] = None):
        """
        Write the settings as YAML.

        Raises:
            ValueError: If no path is given and the config was built from a dict
        """
        output_path = output_path or self.config_path
        if output_path is None:
            raise ValueError("No output path given for a configuration built from a dict")

        with open(output_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.config, f, default_flow_style=False, sort_keys=False)

    def __repr__(self) -> str:
        return f"Config(path={self.config_path})"


def _merge(target: Dict, updates: Dict):
    for key, value in updates.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value


# Settings shared by every module; scripts may call config.update(...)
config = Config()
