"""
evosim_core/snapshot.py - Versioned, sanitizing snapshot export/import

A snapshot document looks like:

    {"meta": {"version": "2.1.0", "timestamp": 1700000000000, "scenarioId": "math"},
     "store": {...sanitized fields...},
     "scenarioData": "<opaque scenario payload>"}

Import never partially adopts a document: parse_snapshot() either returns a
fully sanitized snapshot or None, and callers keep their state on None.
Out-of-range values are clamped and wrongly typed values fall back to
defaults rather than rejecting the whole document.
"""
import json
import logging
import math
import time
from typing import Any, Callable, Dict, Optional

from .config import (DEFAULT_CONTROL, DEFAULT_INITIAL_STATE, DEFAULT_PARAMETERS,
                     DEFAULT_SCENARIO_CONFIGS, DEFAULT_SCENARIO_ID, KNOWN_SCENARIOS)

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = '2.1.0'
LEGACY_VERSION = '2.0.0'


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_record(value: Any) -> bool:
    return isinstance(value, dict)


def _is_finite_number(value: Any) -> bool:
    return (isinstance(value, (int, float)) and not isinstance(value, bool)
            and math.isfinite(value))


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


# Field rules: each maps a finite number to its valid interval
def _unit(value):
    return _clamp01(value)


def _non_negative(value):
    return max(0, value)


def _at_least_one(value):
    return max(1, value)


def _count(value):
    return max(1, int(math.floor(value)))


def _count_or_zero(value):
    return max(0, int(math.floor(value)))


def _any_finite(value):
    return value


_SCENARIO_RULES: Dict[str, Dict[str, Callable]] = {
    'math': {
        'populationSize': _count,
        'mutationRate': _unit,
        'tasksPerGen': _count,
        'difficultyScale': _non_negative,
        'noveltyThreshold': _unit,
        'verificationBudget': _count_or_zero,
        'enableTheorems': bool
    },
    'alignment': {
        'populationSize': _count,
        'mutationRate': _unit,
        'baseResourceRate': _non_negative
    },
    'bio': {
        'initialPopulation': _count,
        'maxPopulation': _count,
        'mutationRate': _unit,
        'energyPerTick': _non_negative,
        'mineralInflux': _non_negative
    },
    'agents': {
        'populationSize': _count,
        'tasksPerGen': _count,
        'baseTaskDifficulty': _at_least_one,
        'driftRate': _unit
    },
    'erdos': {
        'populationSize': _count,
        'mutationRate': _unit,
        'collaborationBoost': _unit
    }
}

_STATE_RULES = {
    'C': _unit,
    'D': _unit,
    'A': _unit,
    'alertRate': _non_negative,
    'generation': _any_finite
}


def normalize_scenario_id(value: Any) -> str:
    """Known scenario id, or the default scenario for anything else"""
    if isinstance(value, str) and value in KNOWN_SCENARIOS:
        return value
    return DEFAULT_SCENARIO_ID


def _sanitize_fields(value: Any, defaults: Dict[str, Any], rules: Dict[str, Callable]) -> Dict[str, Any]:
    result = dict(defaults)
    if not _is_record(value):
        return result
    for key, rule in rules.items():
        candidate = value.get(key)
        if rule is bool:
            if isinstance(candidate, bool):
                result[key] = candidate
        elif _is_finite_number(candidate):
            result[key] = rule(candidate)
    return result


def sanitize_parameters(value: Any) -> Dict[str, Any]:
    return _sanitize_fields(value, DEFAULT_PARAMETERS, dict.fromkeys(DEFAULT_PARAMETERS, _any_finite))


def sanitize_control(value: Any) -> Dict[str, Any]:
    return _sanitize_fields(value, DEFAULT_CONTROL, {'U': _unit})


def sanitize_state(value: Any) -> Dict[str, Any]:
    return _sanitize_fields(value, DEFAULT_INITIAL_STATE, _STATE_RULES)


def sanitize_scenario_configs(value: Any) -> Dict[str, Dict[str, Any]]:
    configs = value if _is_record(value) else {}
    return {
        name: _sanitize_fields(configs.get(name), DEFAULT_SCENARIO_CONFIGS[name], rules)
        for name, rules in _SCENARIO_RULES.items()
    }


def _sanitize_store(store: Dict[str, Any], parameters_key: str) -> Dict[str, Any]:
    return {
        'sdeParameters': sanitize_parameters(store.get(parameters_key)),
        'control': sanitize_control(store.get('control')),
        'bestAgency': store['bestAgency'] if _is_finite_number(store.get('bestAgency')) else 0,
        'aiHistory': store['aiHistory'] if isinstance(store.get('aiHistory'), list) else [],
        'interventionLog': store['interventionLog'] if isinstance(store.get('interventionLog'), list) else [],
        'currentState': sanitize_state(store.get('currentState')),
        'scenarioConfigs': sanitize_scenario_configs(store.get('scenarioConfigs'))
    }


def _build(raw: Dict[str, Any], parameters_key: str) -> Optional[Dict[str, Any]]:
    meta = raw.get('meta')
    store = raw.get('store')
    if not _is_record(meta) or not _is_record(store):
        logger.debug("Rejected snapshot: missing meta or store")
        return None
    if not isinstance(raw.get('scenarioData'), str):
        logger.debug("Rejected snapshot: scenarioData is not a string")
        return None

    timestamp = meta.get('timestamp')
    return {
        'meta': {
            'version': SNAPSHOT_VERSION,
            'timestamp': timestamp if _is_finite_number(timestamp) else _now_ms(),
            'scenarioId': normalize_scenario_id(meta.get('scenarioId'))
        },
        'store': _sanitize_store(store, parameters_key),
        'scenarioData': raw['scenarioData']
    }


def _parse_current(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return _build(raw, 'sdeParameters')


def _migrate_v2_0(raw: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """2.0.0 stored the model parameters under store.parameters"""
    return _build(raw, 'parameters')


_READERS = {
    SNAPSHOT_VERSION: _parse_current,
    LEGACY_VERSION: _migrate_v2_0
}


def create_snapshot(store: Dict[str, Any], scenario_data: str, scenario_id: str,
                    timestamp: Optional[int] = None) -> Dict[str, Any]:
    """Wrap a store and scenario payload in a current-version snapshot"""
    return {
        'meta': {
            'version': SNAPSHOT_VERSION,
            'timestamp': _now_ms() if timestamp is None else timestamp,
            'scenarioId': scenario_id
        },
        'store': store,
        'scenarioData': scenario_data
    }


def serialize_snapshot(snapshot: Dict[str, Any], indent: Optional[int] = None) -> str:
    return json.dumps(snapshot, indent=indent)


def parse_snapshot(text: str) -> Optional[Dict[str, Any]]:
    """Parse, migrate and sanitize a snapshot document; None if unusable"""
    try:
        raw = json.loads(text)
    except (TypeError, ValueError, RecursionError) as e:
        logger.debug(f"Rejected snapshot: not valid JSON ({e})")
        return None

    if not _is_record(raw):
        logger.debug("Rejected snapshot: document is not an object")
        return None

    meta = raw.get('meta')
    version = meta.get('version') if _is_record(meta) else None
    if not isinstance(version, str):
        version = LEGACY_VERSION

    reader = _READERS.get(version)
    if reader is None:
        logger.warning(f"Rejected snapshot: unsupported version {version!r}")
        return None
    return reader(raw)
