# src/cli/__init__.py
