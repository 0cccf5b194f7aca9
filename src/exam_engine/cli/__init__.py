"""Command line interface for the exam attempt engine."""
