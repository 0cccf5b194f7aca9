"""Web API for the exam attempt engine."""
