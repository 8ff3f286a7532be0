"""
服务层包
"""
from .encryption_service import EncryptionService, get_encryption_service
from .cache_service import CacheService, get_cache_service
from .backend_client import BackendClient, get_backend_client, backend_enabled
from .lms_connector import LMSConnector, QueryResult, get_lms_connector
from .report_validator import ReportValidator, ValidationResult
from .catalogue_service import CatalogueService, get_catalogue_service
from .parameter_service import ParameterService, get_parameter_service
from .report_service import ReportService, GenerationResult, get_report_service
from .export_service import ExportService, ExportFile, ReportData, get_export_service
from .subscription_service import SubscriptionService, get_subscription_service
from .bookmark_service import BookmarkService, get_bookmark_service
from .history_service import HistoryService, get_history_service
from .installation_manager import InstallationManager, get_installation_manager
from .errors import (
    InsightsError,
    ReportNotFoundError,
    MissingParameterError,
    BackendError,
    DatasetTooLargeError,
    ManageActionError,
)
from .dto import (
    DataMetadata,
    ParameterOption,
    ReportParameter,
    ReportDefinition,
)

__all__ = [
    "EncryptionService",
    "get_encryption_service",
    "CacheService",
    "get_cache_service",
    "BackendClient",
    "get_backend_client",
    "backend_enabled",
    "LMSConnector",
    "QueryResult",
    "get_lms_connector",
    "ReportValidator",
    "ValidationResult",
    "CatalogueService",
    "get_catalogue_service",
    "ParameterService",
    "get_parameter_service",
    "ReportService",
    "GenerationResult",
    "get_report_service",
    "ExportService",
    "ExportFile",
    "ReportData",
    "get_export_service",
    "SubscriptionService",
    "get_subscription_service",
    "BookmarkService",
    "get_bookmark_service",
    "HistoryService",
    "get_history_service",
    "InstallationManager",
    "get_installation_manager",
    "InsightsError",
    "ReportNotFoundError",
    "MissingParameterError",
    "BackendError",
    "DatasetTooLargeError",
    "ManageActionError",
    "DataMetadata",
    "ParameterOption",
    "ReportParameter",
    "ReportDefinition",
]
