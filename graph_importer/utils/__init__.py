# -*- coding: utf-8 -*-
"""
Utilities package for common functionality across the import pipeline.

Contains logging setup, configuration loading, core dataclasses, the error
taxonomy, the failure sink and import statistics.
"""
