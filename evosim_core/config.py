"""
evosim_core/config.py - Default run state, parameters and scenario configurations
"""

# State variables of a run, all normalized to [0, 1] except alertRate/generation
DEFAULT_INITIAL_STATE = {
    'C': 0.05,
    'D': 0.6,
    'A': 0.02,
    'alertRate': 0.0,
    'generation': 0
}

# Coupling parameters of the continuous-state model
DEFAULT_PARAMETERS = {
    'k_CD': 0.12,
    'k_AC': 0.10,
    'k_DU': 0.35,
    'k_U': 0.08,
    'sigma_C': 0.03,
    'sigma_D': 0.02,
    'sigma_A': 0.05,
    'tau': 5,
    'eps': 0.05,
    'A_alert': 0.7,
    'dt': 0.1
}

DEFAULT_CONTROL = {'U': 0.2}

DEFAULT_MATH_CONFIG = {
    'populationSize': 50,
    'mutationRate': 0.15,
    'tasksPerGen': 40,
    'difficultyScale': 1.0,
    'noveltyThreshold': 0.5,
    'verificationBudget': 100,
    'enableTheorems': True
}

DEFAULT_ALIGNMENT_CONFIG = {
    'populationSize': 20,
    'mutationRate': 0.05,
    'baseResourceRate': 1.0
}

DEFAULT_BIO_CONFIG = {
    'initialPopulation': 50,
    'maxPopulation': 500,
    'mutationRate': 0.1,
    'energyPerTick': 1000,
    'mineralInflux': 100
}

DEFAULT_AGENT_CONFIG = {
    'populationSize': 30,
    'tasksPerGen': 10,
    'baseTaskDifficulty': 20,
    'driftRate': 0.1
}

DEFAULT_ERDOS_CONFIG = {
    'populationSize': 36,
    'problemsPerGeneration': 1,
    'mutationRate': 0.12,
    'collaborationBoost': 0.3
}

DEFAULT_SCENARIO_CONFIGS = {
    'math': DEFAULT_MATH_CONFIG,
    'alignment': DEFAULT_ALIGNMENT_CONFIG,
    'bio': DEFAULT_BIO_CONFIG,
    'agents': DEFAULT_AGENT_CONFIG,
    'erdos': DEFAULT_ERDOS_CONFIG
}

DEFAULT_SCENARIO_ID = 'sde-v1'
KNOWN_SCENARIOS = frozenset({DEFAULT_SCENARIO_ID, 'math', 'alignment', 'bio', 'agents', 'erdos'})


def default_store():
    """Fresh store record populated with defaults"""
    return {
        'sdeParameters': dict(DEFAULT_PARAMETERS),
        'control': dict(DEFAULT_CONTROL),
        'bestAgency': 0.0,
        'aiHistory': [],
        'interventionLog': [],
        'currentState': dict(DEFAULT_INITIAL_STATE),
        'scenarioConfigs': {name: dict(cfg) for name, cfg in DEFAULT_SCENARIO_CONFIGS.items()}
    }
