import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    # Incremental processing
    "batch_size": 5,
    "max_batches": 0,  # 0 = process every slice in one run
    "timeout_seconds": 600,
    "resume": True,
    "checkpoint_max_age_hours": 24,
    "fast_mode": False,
    "fast_mode_min_length": 20,
    # Comment classification
    "process_nitpick_comments": True,
    "nitpick_priority": "low",
    "default_status": "todo",
    "low_priority_status": "pending",
    "low_priority_patterns": ["nit:", "nits:", "minor:", "suggestion:", "consider:", "optional:", "style:"],
    # Deduplication
    "deduplication_enabled": True,
    "similarity_threshold": 0.8,
    "semantic_dedup": True,
    # Retry
    "smart_retry": True,
    "max_attempts": 3,
    "retry_base_delay": 2.0,
    "retry_max_delay": 30.0,
    "truncation_threshold": 20000,
    "max_prompt_size": 32768,
    "user_language": None,
    # Persistence
    "store": "file",
    "store_path": ".pr-review",
    "analytics_enabled": True,
    "analytics_path": ".pr-review/analytics/response_events.json",
    "analytics_retention_days": 30,
    "analytics_max_events": 1000,
}


def load_config(config_path: str = ".prtasks.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prtasks.yml in the current directory
      3. CLI argument overrides
    """
    config = {**DEFAULT_CONFIG, "low_priority_patterns": list(DEFAULT_CONFIG["low_priority_patterns"])}

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config
