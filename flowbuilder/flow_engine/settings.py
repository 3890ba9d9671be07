"""
Engine tunables, read from the Flask config or any mapping.
"""

from dataclasses import dataclass, fields
from typing import Any, Mapping


@dataclass(frozen=True)
class EngineSettings:
    """Limits and defaults applied to every run."""
    http_timeout_seconds: float = 30.0
    default_max_iterations: int = 1000
    max_iterations_cap: int = 10000
    max_delay_seconds: float = 86400.0
    expression_max_steps: int = 10000
    expression_timeout_ms: int = 250

    CONFIG_KEYS = {
        'http_timeout_seconds': 'FLOW_HTTP_TIMEOUT_SECONDS',
        'default_max_iterations': 'FLOW_DEFAULT_MAX_ITERATIONS',
        'max_iterations_cap': 'FLOW_MAX_ITERATIONS_CAP',
        'max_delay_seconds': 'FLOW_MAX_DELAY_SECONDS',
        'expression_max_steps': 'FLOW_EXPRESSION_MAX_STEPS',
        'expression_timeout_ms': 'FLOW_EXPRESSION_TIMEOUT_MS',
    }

    @classmethod
    def from_mapping(cls, config: Mapping[str, Any]) -> 'EngineSettings':
        """Build settings from ``FLOW_*`` keys, keeping defaults for absent ones."""
        values = {}
        for item in fields(cls):
            key = cls.CONFIG_KEYS.get(item.name)
            if key and config.get(key) is not None:
                values[item.name] = type(item.default)(config[key])
        return cls(**values)
