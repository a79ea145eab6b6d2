"""Commit synthesis and deployment orchestration."""
