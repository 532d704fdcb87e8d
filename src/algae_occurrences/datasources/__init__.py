"""External data source integrations.

    datasources/
    ├── gbif/         # GBIF taxonomy + occurrences (async, cached)
    │   ├── client.py       # API URLs, constants, one method per endpoint
    │   ├── taxonomy.py     # Name -> usage key resolution
    │   ├── occurrences.py  # Occurrence fetching and filtering
    │   └── species.py      # Details, suggestions, related taxa
    └── dataset.py    # Species names out of the algae CSV, GBIF names back to rows

Fetch code never talks to the network directly: it goes through
``GBIFClient``, which sits on ``services.http.RetryTransport``, and reads and
writes the shared ``CacheStore``.
"""
