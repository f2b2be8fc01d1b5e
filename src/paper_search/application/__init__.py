"""
Application Layer - Use Cases

Contains:
- search: orchestration, merging, semantic ranking, filters
"""
