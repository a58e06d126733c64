"""Domain layer: vocabularies, criteria and record models."""
