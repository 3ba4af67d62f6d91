"""
Test suite for Survey Notes.

This package contains tests for all core functionality including:
- Type definitions, configuration and schema resolution
- ASR normalization, segmentation, routing and formatting
- Near-duplicate detection and merging
- Routing config fetching and caching
- End-to-end structuring and the CLI
"""
