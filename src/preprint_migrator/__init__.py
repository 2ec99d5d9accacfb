"""Migrate OSF preprints into PKP native import XML for Open Preprint Systems."""

__version__ = "0.1.0"
