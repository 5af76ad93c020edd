"""Public interface for the ``fnzo`` package.

Re-exports the service wiring and the public models/errors as the stable
import surface. There is no runtime logic here, only symbol re-exports.
"""

from .api import Services, build_services, create_store
from .config import Settings
from .errors import (
    AuthenticationError,
    ConfigurationError,
    FnzoError,
    NotFoundError,
    PartialConsistencyError,
    RateLimitError,
    RemoteError,
    ValidationError,
)
from .models import (
    AuthSession,
    Category,
    CategoryCreate,
    CategoryUpdate,
    CategoryWithSpending,
    Kind,
    Template,
    TemplateCreate,
    TemplateUpdate,
    Transaction,
)

__all__ = [
    # Wiring
    "Services",
    "Settings",
    "build_services",
    "create_store",
    # Models / types
    "Kind",
    "Transaction",
    "Category",
    "CategoryCreate",
    "CategoryUpdate",
    "CategoryWithSpending",
    "Template",
    "TemplateCreate",
    "TemplateUpdate",
    "AuthSession",
    # Errors
    "FnzoError",
    "ConfigurationError",
    "AuthenticationError",
    "ValidationError",
    "RemoteError",
    "RateLimitError",
    "NotFoundError",
    "PartialConsistencyError",
]
