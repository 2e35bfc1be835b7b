"""Lab orchestration: topology models, stage pipelines and actions."""

__version__ = "0.1.0"
