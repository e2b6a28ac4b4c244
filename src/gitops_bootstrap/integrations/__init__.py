"""External system integrations (git remotes, Kubernetes API)."""
