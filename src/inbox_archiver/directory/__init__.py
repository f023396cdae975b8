"""Directory principal caching and access group provisioning."""

from .cache import DirectoryPrincipalCache
from .provisioner import GroupProvisioner, ProvisioningError

__all__ = ["DirectoryPrincipalCache", "GroupProvisioner", "ProvisioningError"]
