import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "checkpoint_path": ".#igitt.yml",
    "poll_interval": 0.01,  # seconds between event polls in the session loop
    "request_timeout": 30.0,
    "results_csv": "results.csv",  # target of the in-session Evaluate export
}


def load_config(config_path: str = ".igitt.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .igitt.yml in the current directory
      3. CLI argument overrides
    """
    config = dict(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Tokens missing from the file and the command line come from the environment.
    config.setdefault("github_token", os.environ.get("GITHUB_TOKEN"))
    config.setdefault("gitlab_token", os.environ.get("GITLAB_TOKEN"))

    return config
