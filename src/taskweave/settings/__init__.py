"""Settings for the taskweave DAG engine."""

from .settings import Settings

__all__ = ["Settings"]
