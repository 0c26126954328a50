# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for GraphCascade.

This package contains tests for all components of GraphCascade:
- Unit tests for the parser, linguistics, schema and dependency graph
- Event bus and pipelining tests
- Resolver tests including concurrent deduplication
- End-to-end session scenarios
"""

STARTUP_SCHEMA = {
    "Startup": {
        "name": "string",
        "idea": "What is the core idea? ->Idea",
        "founders": ["Who founded it? ->Founder"],
    },
    "Idea": {"description": "string"},
    "Founder": {"name": "string", "role": "ceo | cto | coo"},
}


__all__ = [
    "STARTUP_SCHEMA",
]
