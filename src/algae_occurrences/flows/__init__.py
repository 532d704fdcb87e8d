"""
Prefect flows for the occurrence pipeline.

Flows:
- occurrences: Read species names from the algae CSV, resolve them against
  GBIF, fetch occurrences and write the result to ``live/occurrences.json``

Usage (local):
    python -m algae_occurrences.flows.occurrences data/algae.csv

Usage (Prefect):
    prefect server start  # Optional, for dashboard
    prefect deployment run 'fetch-occurrences/default'
"""
