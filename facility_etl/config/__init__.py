"""
Run configuration: environment settings and injected query units.
"""

from .settings import LocationConfigLoader, PipelineSettings, load_query_units

__all__ = ["LocationConfigLoader", "PipelineSettings", "load_query_units"]
