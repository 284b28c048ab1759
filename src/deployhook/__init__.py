"""GitHub webhook driven provisioning and build dispatch.

This package links repository events to a deploy platform:
- GitHub webhook verification and event classification
- Idempotent Project registry with PostgreSQL persistence
- Platform project/service provisioning with orphan compensation
- Builder workflow dispatch via the GitHub API
"""
