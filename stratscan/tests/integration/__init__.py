"""
StratScan Integration Tests Package
===================================
Integration tests for complete scan workflows.

This package provides:
- Signal engine end-to-end tests (ingest -> candidates -> confluence -> risk)
- Scanner pass, failure isolation and lifecycle tests
- Command line session and replay tests
"""
