"""
Orchestration API client.
"""

from trainingjob.client.kube import KubeClient

__all__ = ["KubeClient"]
