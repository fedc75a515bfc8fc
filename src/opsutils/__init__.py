"""opsutils: utility packages for internal CLI tools and automation scripts.

Subpackages:
- `opsutils.foundation`: HTTP request executor, retry policy, logging
- `opsutils.core`: exceptions, object parameters and small helpers
- `opsutils.clients`: Slack webhook and ECR image clients
"""

__version__ = "0.1.0"
