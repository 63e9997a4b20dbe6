"""Domain models, mutation results and settings."""
