"""
Infrastructure Layer - External Systems Integration

Contains:
- sources: PubMed, arXiv and bioRxiv adapters
- cache: memory and Redis result caches
- ratelimit: per-source admission control
"""
