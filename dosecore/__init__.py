"""Pharmacokinetic simulation and mood-correlation analytics for a personal medication log.

This package holds the domain models and pure analyzers, isolated from storage
and presentation so they are easy to test and reason about.
"""
