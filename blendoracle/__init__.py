"""Blendoracle — on-demand personalized page generation."""
