"""RefTagger: reference image vocabulary, scored search and tag reconciliation."""

__version__ = "0.1.0"
