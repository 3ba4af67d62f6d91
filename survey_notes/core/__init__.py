"""
Core functionality for Survey Notes.

This package contains the main logic for:
- ASR correction and statement segmentation of dictated transcripts
- Canonical section schema resolution
- Rule-based intent routing and section formatting
- Near-duplicate detection and incremental merging of notes
- Routing configuration loading and caching
- The alternative LLM structuring path
- Configuration management
"""
