"""Service layer built on the git and Kubernetes integrations."""
