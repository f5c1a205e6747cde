"""Source bucket access, archive reading and catalog reconciliation."""

from .catalog import CatalogClient, ReconciliationResult, reconcile
from .doi import DOIParts, extract_doi_from_url, parse_doi
from .folders import FolderReference, normalize_batch, resolve_folder
from .jats import ExtractedMetadata, extract_metadata, parse_jats_file, preprocess_xml
from .listing import RemoteArchiveEntry, list_archives, list_content_folders
from .meca import ExtractedArchive, extract_archive, parse_manifest, read_remote_manifest
from .periods import parse_batch_selector, parse_month_selector
from .store import ObjectStoreClient

__all__ = [
    "CatalogClient",
    "DOIParts",
    "ExtractedArchive",
    "ExtractedMetadata",
    "FolderReference",
    "ObjectStoreClient",
    "ReconciliationResult",
    "RemoteArchiveEntry",
    "extract_archive",
    "extract_doi_from_url",
    "extract_metadata",
    "list_archives",
    "list_content_folders",
    "normalize_batch",
    "parse_batch_selector",
    "parse_doi",
    "parse_jats_file",
    "parse_manifest",
    "parse_month_selector",
    "preprocess_xml",
    "read_remote_manifest",
    "reconcile",
    "resolve_folder",
]
