"""Utility functions and helpers for Chatwarden."""
