"""GitOps bootstrap-and-convergence toolkit for freshly provisioned clusters."""

__version__ = "0.1.0"
