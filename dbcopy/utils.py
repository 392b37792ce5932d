import os
from typing import Dict, Any
from dynaconf import Dynaconf

def load_settings() -> Dict[str, Any]:
    """
    Load copy defaults from settings.yml file

    Returns:
        Dynaconf settings for the environment selected by DYNACONF_ENV
    """
    # settings.yml is next to this file
    s_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "settings.yml")
    if not os.path.exists(s_path):
        raise FileNotFoundError(f"Settings file not found: {s_path}")
    current_env = os.getenv("DYNACONF_ENV", "default")

    settings = Dynaconf(
        settings_files=[s_path],
        environments=True,
        env_switcher="DYNACONF_ENV",
        current_env=current_env
    )
    return settings
