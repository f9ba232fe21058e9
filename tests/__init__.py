"""Test suite for stylegen.

Test Structure:
- unit/: Unit tests for individual components
  - generation/: Prompt building, progress store, executor, orchestrator, API
  - config/: Config file discovery, merging and input loading
  - cli/: Command-line entry points
  - utils/: Logging setup
- fixtures/: Fake image client and request factories
- conftest.py: Shared fixtures and test configuration
"""
