"""Command-line tools for the knowledge engine.

- ``python -m knowledge_engine.cli`` -- knowledge base management, document
  import, search and tagging (see :mod:`knowledge_engine.cli.knowledge`).
"""
