"""
Configuration management for Tribunal.

- **app_configuration.py**: file-locked YAML loader for ``config/app_config.yml``;
  falls back to an empty mapping on a missing or malformed file.

- **voting_settings.py**: typed accessor over the ``voting`` section (vote
  duration, cooldown, role names, penalties and sanction thresholds), with a
  default for every key.
"""
