# -*- coding: utf-8 -*-
"""
Graph importer package.

Top-level package for the CSV-to-graph import pipeline: schema resolution,
record compilation, batch accumulation, concurrent dispatch, failure capture
and import statistics.
"""

__version__ = "1.0.0"
