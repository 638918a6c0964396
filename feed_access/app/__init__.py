"""
Feed access layer application package.

- adapters: remote content service protocol and HTTP client
- caching: query cache, pagination and view-facing observers
- domain: records, query keys and the mutation invalidation table
- orchestrator: query and mutation definitions over one cache
- main: composition root
"""
