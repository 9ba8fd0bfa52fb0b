"""
Configuration management for Chatwarden.

- **app_configuration.py**: YAML configuration loader with environment variable
  overrides. Produces the immutable :class:`ModerationSettings` consumed by the
  decision engine (banned terms, admin numbers, target groups, threshold, file
  locations and maintenance intervals).
"""
