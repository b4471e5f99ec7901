"""Data models for Rollout configuration and deployment results."""
