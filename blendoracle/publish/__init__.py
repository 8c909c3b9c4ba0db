"""Persist-and-publish: authoring store writes, preview, publish and cache purge."""
