"""
Ensemble build configuration and its loading from files, environment and dicts.
"""
import os
import json
import yaml
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from utils.logging_config import get_logger
from utils.exceptions import ConfigurationError, InvalidArgumentError
from validation.schema import EnsembleConfigSchema


# Spellings used by external orchestrators
CAMEL_CASE_ALIASES = {
    'predictionKind': 'prediction_kind',
    'selectorKind': 'selector_kind',
    'combinerKind': 'combiner_kind',
    'diversityMetric': 'diversity_metric',
    'qualityMetric': 'quality_metric',
    'retainedCount': 'retained_count',
    'learnersSelectionProportion': 'learners_selection_proportion',
    'minDiversityGain': 'min_diversity_gain',
    'qualityThreshold': 'quality_threshold',
    'tieBreakPolicy': 'tie_break_policy',
    'maxWorkers': 'max_workers',
}


@dataclass(frozen=True)
class EnsembleConfig:
    """Which selector and combiner to use, and their parameters."""
    prediction_kind: str = 'regression'
    selector_kind: str = 'all'
    combiner_kind: str = 'median'

    # Selection
    diversity_metric: str = 'disagreement'
    quality_metric: Optional[str] = None
    retained_count: Union[int, str] = 'auto'
    learners_selection_proportion: float = 0.5
    min_diversity_gain: Optional[float] = None
    quality_threshold: Optional[float] = None

    # Combination
    tie_break_policy: str = 'lowestIndex'
    normalize: bool = False

    # Evaluation
    max_workers: int = 4

    def __post_init__(self):
        try:
            EnsembleConfigSchema().validate(asdict(self))
        except InvalidArgumentError as e:
            raise ConfigurationError(
                f"Invalid ensemble configuration: {e.message}",
                details=e.details
            ) from e

        # The ensemble package imports this module, so its registries load lazily
        from ensemble.metrics import get_quality_metric
        from ensemble.diversity import create_diversity_measure

        kind = self.kind
        get_quality_metric(kind, self.quality_metric)
        create_diversity_measure(kind, self.diversity_metric)
        if self.combiner_kind == 'vote' and not kind.is_classification:
            raise ConfigurationError("The vote combiner needs a classification prediction kind")

    @property
    def kind(self):
        from ensemble.kinds import PredictionKind
        return PredictionKind.parse(self.prediction_kind)

    def selector_params(self) -> Dict[str, Any]:
        """Keyword arguments for the configured selector."""
        if self.selector_kind == 'all':
            return {}
        params = {
            'metric': self.quality_metric,
            'retained_count': self.retained_count,
            'learners_selection_proportion': self.learners_selection_proportion,
        }
        if self.selector_kind == 'best':
            params['quality_threshold'] = self.quality_threshold
        else:
            params['diversity'] = self.diversity_metric
            params['min_diversity_gain'] = self.min_diversity_gain
        return params

    def combiner_params(self) -> Dict[str, Any]:
        """Keyword arguments for the configured combiner."""
        if self.combiner_kind in ('median', 'average'):
            return {'normalize': self.normalize}
        if self.combiner_kind == 'weightedAverage':
            return {'weightage': self.quality_metric, 'normalize': self.normalize}
        if self.combiner_kind == 'vote':
            return {'tie_break': self.tie_break_policy}
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    def to_yaml(self, filepath: str):
        """Save config to YAML file."""
        with open(filepath, 'w') as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False)

    def to_json(self, filepath: str):
        """Save config to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'EnsembleConfig':
        """Create config from a dictionary using snake_case or camelCase keys."""
        if not isinstance(config_dict, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping, got {type(config_dict).__name__}"
            )
        normalized = {}
        for key, value in config_dict.items():
            name = CAMEL_CASE_ALIASES.get(key, key)
            if name in normalized:
                raise ConfigurationError(f"Configuration key given twice: {key}")
            normalized[name] = value

        unknown = sorted(set(normalized) - set(cls.__dataclass_fields__))
        if unknown:
            raise ConfigurationError(
                f"Unknown configuration keys: {unknown}",
                details={'unknown': unknown}
            )
        return cls(**normalized)

    @classmethod
    def from_yaml(cls, filepath: str) -> 'EnsembleConfig':
        """Load config from YAML file."""
        with open(filepath, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
        return cls.from_dict(config_dict)

    @classmethod
    def from_json(cls, filepath: str) -> 'EnsembleConfig':
        """Load config from JSON file."""
        with open(filepath, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)


class ConfigManager:
    """
    Merges configuration from dictionaries, files and environment variables.
    Later sources override earlier ones.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self.logger = get_logger(self.__class__.__name__)

    def load_from_file(self, filepath: str):
        """
        Load configuration from file (JSON or YAML).

        Args:
            filepath: Path to configuration file
        """
        path = Path(filepath)

        if not path.exists():
            raise ConfigurationError(
                f"Configuration file not found: {filepath}",
                details={'filepath': str(path)}
            )

        if path.suffix in ['.yaml', '.yml']:
            loader = yaml.safe_load
        elif path.suffix == '.json':
            loader = json.load
        else:
            raise ConfigurationError(
                f"Unsupported file format: {path.suffix}",
                details={'filepath': str(path)}
            )

        try:
            with open(path, 'r') as f:
                data = loader(f) or {}
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to parse configuration from {filepath}: {e}",
                details={'filepath': str(path), 'error': str(e)}
            ) from e

        self.load_from_dict(data)
        self.logger.info(f"Loaded configuration from {filepath}")

    def load_from_env(self, prefix: str = "ENSEMBLE_"):
        """
        Load configuration from environment variables.

        ``ENSEMBLE_SELECTOR_KIND=bestDiverse`` sets ``selector_kind``. Values
        are parsed as JSON where possible so numbers and booleans keep their type.
        Variables that do not name a configuration field are skipped.
        """
        known = {f.name for f in fields(EnsembleConfig)}
        loaded = 0
        for key, value in os.environ.items():
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):].lower()
            if name not in known:
                self.logger.debug(f"Ignoring environment variable {key}: not a configuration field")
                continue
            try:
                parsed_value = json.loads(value)
            except json.JSONDecodeError:
                parsed_value = value
            self._data[name] = parsed_value
            loaded += 1

        self.logger.info(f"Loaded {loaded} configuration values from environment")

    def load_from_dict(self, data: Dict[str, Any]):
        """Merge configuration from a dictionary."""
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration must be a mapping, got {type(data).__name__}"
            )
        for key, value in data.items():
            self._data[CAMEL_CASE_ALIASES.get(key, key)] = value

    def save_to_file(self, filepath: str, format: str = 'yaml'):
        """Save the merged configuration."""
        path = Path(filepath)
        path.parent.mkdir(parents=True, exist_ok=True)

        if format not in ('yaml', 'json'):
            raise ConfigurationError(f"Unsupported format: {format}")

        with open(path, 'w') as f:
            if format == 'yaml':
                yaml.safe_dump(self._data, f, default_flow_style=False)
            else:
                json.dump(self._data, f, indent=2)

        self.logger.info(f"Saved configuration to {filepath}")

    def get(self, key: str, default: Any = None) -> Any:
        """Get configuration value."""
        return self._data.get(CAMEL_CASE_ALIASES.get(key, key), default)

    def set(self, key: str, value: Any):
        """Set configuration value."""
        self._data[CAMEL_CASE_ALIASES.get(key, key)] = value
        self.logger.debug(f"Set config: {key} = {value}")

    def build(self) -> EnsembleConfig:
        """Validate the merged values into an ``EnsembleConfig``."""
        return EnsembleConfig.from_dict(dict(self._data))

    def clear(self):
        """Clear all configuration."""
        self._data = {}


def load_config(filepath: str) -> EnsembleConfig:
    """Load an ``EnsembleConfig`` from a YAML or JSON file."""
    manager = ConfigManager()
    manager.load_from_file(filepath)
    return manager.build()
