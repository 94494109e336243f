"""
lab-infra Test Suite.

- unit/: schema, loader and settings tests, CDK template assertions for each
  stack, and operator tooling tests with mocked AWS clients and subprocesses
- conftest.py: Shared fixtures and test configuration

Run tests with: pytest
"""
