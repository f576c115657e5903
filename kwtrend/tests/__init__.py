"""Test package for the keyword trend pipeline."""
