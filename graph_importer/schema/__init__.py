# -*- coding: utf-8 -*-
"""
Schema package.

Contains schema_resolver, which turns raw YAML schema descriptions into fully
resolved, immutable column mappings.
"""
