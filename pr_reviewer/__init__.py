"""AI pull request reviewer driven by project rules."""

__version__ = "0.3.0"
