"""
Configuration Utilities for the LifeWealth simulator
Pure utility functions for configuration management and default parameters.
"""

import json
import os
from typing import Dict, Any

from simulation import PolicyParams

UI_CONFIG_FILE = 'ui_config.json'
DEFAULT_HISTORY_FILE = 'lifewealth_history.json'
DEFAULT_GEMINI_MODEL = 'gemini-2.5-flash'


def load_ui_config(filepath: str = UI_CONFIG_FILE) -> Dict[str, Any]:
    """Load UI configuration like API keys from ui_config.json"""
    try:
        if os.path.exists(filepath):
            with open(filepath, 'r') as f:
                config = json.load(f)
            if isinstance(config, dict):
                return config
            print(f"ERROR [load_ui_config]: {filepath} does not contain a JSON object")
    except (OSError, json.JSONDecodeError) as e:
        print(f"ERROR [load_ui_config]: Could not load {filepath}: {e}")
    return {}


def save_ui_config(config: Dict[str, Any], filepath: str = UI_CONFIG_FILE) -> bool:
    """Save UI configuration to ui_config.json"""
    try:
        with open(filepath, 'w') as f:
            json.dump(config, f, indent=2)
        return True
    except (OSError, TypeError) as e:
        print(f"ERROR [save_ui_config]: Could not save {filepath}: {e}")
        return False


def get_default_policy_params() -> Dict[str, float]:
    """Get default yearly decisions (savings rate and allocation)"""
    return {
        'savings_rate': 0.2,
        'stock_allocation': 0.8,
        'bond_allocation': 0.1,
    }


def get_policy_params(config: Dict[str, Any]) -> PolicyParams:
    """Build validated policy parameters from config, falling back to defaults"""
    values = get_default_policy_params()
    for key in values:
        if config.get(key) is not None:
            values[key] = float(config[key])
    policy = PolicyParams(**values)
    policy.validate()
    return policy


def get_ai_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """AI coach settings; the API key may also come from GEMINI_API_KEY"""
    api_key = config.get('gemini_api_key') or os.environ.get('GEMINI_API_KEY')
    return {
        'enable_ai_analysis': bool(config.get('enable_ai_analysis', False)) and bool(api_key),
        'gemini_api_key': api_key,
        'gemini_model': config.get('gemini_model', DEFAULT_GEMINI_MODEL),
    }


def get_history_path(config: Dict[str, Any]) -> str:
    return config.get('history_file', DEFAULT_HISTORY_FILE)
