"""Command-line interface for the T3 client.

Structure:
- __main__.py: typer app (``t3services`` entry point, ``python -m t3services.cli``)
"""
