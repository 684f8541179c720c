"""
Property-based tests for the decoder, printer and driver.

This package hosts Hypothesis strategies and the test entrypoints for both
the fast CI lane and the nightly fuzz job.
"""
