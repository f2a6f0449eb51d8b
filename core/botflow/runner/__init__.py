"""Command-line runner for plugin graphs stored as JSON files."""
