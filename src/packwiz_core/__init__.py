"""packwiz-core - Modpack manifest, index and update management.

Public API: the on-disk pack model (manifest, index, descriptors), the
update/resolution engine, the source integrations and the pack operations.

This is library mechanism; apps inject policy (sources, credentials, hash engines).
"""

from .client import HttpFetcher
from .config import SourceSettings
from .curseforge import CurseForgeClient
from .curseforge import CurseForgeDependencySource
from .curseforge import CurseForgeUpdater
from .exceptions import ExternalSourceError
from .exceptions import IntegrityError
from .exceptions import InvalidOperationError
from .exceptions import MalformedError
from .exceptions import PackError
from .exceptions import PackNotFoundError
from .exceptions import UnsupportedError
from .github import GitHubClient
from .github import GitHubUpdater
from .hashing import HashDigest
from .hashing import HashRegistry
from .ignore import IgnoreRules
from .index import ContentIndex
from .index import IndexEntry
from .modrinth import ModrinthClient
from .modrinth import ModrinthDependencySource
from .modrinth import ModrinthUpdater
from .operations import OperationReport
from .operations import add_with_dependencies
from .operations import refresh_pack
from .operations import rehash_pack
from .operations import remove_mod
from .operations import set_pinned
from .operations import update_pack
from .pack import PackManifest
from .protocols import Dependency
from .protocols import FileCandidate
from .protocols import FileFetcherProtocol
from .protocols import MetadataClientProtocol
from .protocols import ProjectInfo
from .resolver import DependencyResolver
from .schema import ModDownload
from .schema import ModOption
from .schema import ModRecord
from .schema import Side
from .updater import UpdateCheckResult
from .updater import UpdaterRegistry
from .versions import compare_versions

__all__ = [
    # Pack model
    "PackManifest",
    "ContentIndex",
    "IndexEntry",
    "IgnoreRules",
    "ModRecord",
    "ModDownload",
    "ModOption",
    "Side",
    # Hashing
    "HashDigest",
    "HashRegistry",
    # Updates and resolution
    "UpdateCheckResult",
    "UpdaterRegistry",
    "DependencyResolver",
    "Dependency",
    "FileCandidate",
    "ProjectInfo",
    "MetadataClientProtocol",
    "FileFetcherProtocol",
    # Sources
    "SourceSettings",
    "HttpFetcher",
    "CurseForgeClient",
    "CurseForgeUpdater",
    "CurseForgeDependencySource",
    "ModrinthClient",
    "ModrinthUpdater",
    "ModrinthDependencySource",
    "GitHubClient",
    "GitHubUpdater",
    # Operations
    "OperationReport",
    "refresh_pack",
    "update_pack",
    "set_pinned",
    "remove_mod",
    "rehash_pack",
    "add_with_dependencies",
    # Exceptions
    "PackError",
    "PackNotFoundError",
    "UnsupportedError",
    "MalformedError",
    "ExternalSourceError",
    "IntegrityError",
    "InvalidOperationError",
    # Utilities
    "compare_versions",
]

__version__ = "0.1.0"
