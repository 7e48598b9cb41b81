"""
Test suite for the `gsvviews` package.

This package contains unit and integration tests for `gsvviews`, including:

- `tiles` and `generation`: fetching, retries, validity checks and layout detection.
- `pool`: the shared worker pool and batching.
- `stitch` and `projection`: canvas assembly, cropping and reprojection.
- `core`: the per-scene pipeline and whole runs against a mocked tile server.
- Utilities for generating dummy images and mocking async HTTP calls.

Usage:

    # Run all tests in the package
    pytest gsvviews/tests

    # Run a specific test file
    pytest gsvviews/tests/test_core.py
"""
