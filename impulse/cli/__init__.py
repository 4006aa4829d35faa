"""Impulse command line interface."""
