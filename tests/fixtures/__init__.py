"""Test fixtures for cms-mirror tests.

This module provides:
- An in-memory remote store with a call log and failure injection
- Sample content objects of every kind
"""
