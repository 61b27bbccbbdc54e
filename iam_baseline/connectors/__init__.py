"""
Connectors Package for IAM Baseline.

This package drives the external provisioning tool (Terraform) and
provides read-only access to AWS for post-apply verification.
"""

from .base_connector import BaseConnector, ConnectorResult, MockConnector
from .terraform_connector import TerraformConnector, TerraformMockConnector


def get_connector_class(system: str, mock: bool = False):
    """Get connector class for a system, with the mock variant for dry runs."""
    if system == "terraform":
        return TerraformMockConnector if mock else TerraformConnector

    if system == "aws":
        from .aws_connector import AWSConnector

        return AWSConnector

    raise ValueError(f"No connector available for system: {system}")


__all__ = [
    "BaseConnector",
    "MockConnector",
    "ConnectorResult",
    "TerraformConnector",
    "TerraformMockConnector",
    "get_connector_class",
]
