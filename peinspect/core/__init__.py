"""Error hierarchy and decoded record models."""
