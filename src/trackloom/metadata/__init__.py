"""Enrichment collaborators: metadata extraction, duration probing, analysis
parsing and user overrides."""
