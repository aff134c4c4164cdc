"""Test suite for HouseHunt.

This package contains hermetic tests following the pytest framework.
Test modules mirror the househunt/ package: one module per component.

Testing Philosophy:
    - Use pytest-mock and scripted fakes for browser and network isolation
    - Use hypothesis for the price and quality properties
    - Avoid external dependencies - all I/O should be mocked
"""
