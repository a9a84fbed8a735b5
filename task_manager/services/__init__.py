"""Use-case layer: authorization, task queries and orchestration."""
