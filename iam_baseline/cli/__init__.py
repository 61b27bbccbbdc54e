"""Command line interface for IAM Baseline."""
