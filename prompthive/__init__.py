"""
PromptHive - versioned prompt management

Stores prompts as named, versioned artifacts locally and synchronizes their
histories with a remote registry.
"""

__version__ = "0.1.0"

# Configuration is available at top level for convenience
from prompthive.config import config
from prompthive.version_control import PromptRepository

__all__ = ["config", "PromptRepository", "__version__"]
