"""
Moderation core for Chatwarden.

- **text_matcher.py**: Text normalization and boundary-aware banned term matching.
- **command_interpreter.py**: Operator command recognition and authorization.
- **moderation_engine.py**: The per-message decision procedure and the
  moderation mode state machine.
"""
