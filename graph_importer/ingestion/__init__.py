# -*- coding: utf-8 -*-
"""
Ingestion package.

Contains csv_reader, the lazy row source for delimited input files.
"""
