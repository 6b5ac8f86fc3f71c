"""Computational steps of a PLS correlation analysis."""
