# src/compose/__init__.py — v1
