"""CLI module for moltstream."""
