"""Batch image generation engine.

Import from the submodules directly (``stylegen.core.generation.api`` for the
public entry points); this package imports nothing so that configuration
models can depend on ``image_client`` without a cycle.
"""
