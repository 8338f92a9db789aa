"""KubePulse: live pod status for Kubernetes clusters."""

__version__ = "0.3.0"
