"""Clinical Event Timeline & Relationship Inference Engine."""

__version__ = "0.1.0"
