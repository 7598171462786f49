"""Command-line tools for learnforge."""
