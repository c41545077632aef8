# -*- coding: utf-8 -*-
"""
Graph package for statement compilation and database submission.

Contains statement_compiler (record to insert-statement rendering),
graph_client (Neo4j and dry-run database clients) and import_processor
(orchestrator and CLI entry point).
"""
