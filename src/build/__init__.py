# src/build/__init__.py — v1
