"""
Chatwarden - Group-Chat Moderation Bot

Chatwarden watches a stream of group-chat messages, removes messages that use
banned language, warns the people who sent them and removes repeat offenders
from the group once they reach the strike threshold.

Core Components:

- **Decision Engine**: Deduplicates deliveries, interprets operator commands and
  applies the content policy to each message in order
- **Warning Store**: Crash-safe JSON persistence of strike counts with
  coalesced writes and a sticky memory-only fallback
- **Processing Queue**: Serializes message handling so strike increments and
  removals never race
- **Interactive Console**: Live administration interface for status checks,
  warning lookups and graceful shutdown

Usage:
    from chatwarden.main import main
    main()  # Starts the bot with console interface
"""
