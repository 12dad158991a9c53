"""Resource tree scanning, declared catalog and identifier reconciliation."""

from .catalog import AssetCatalog, BundleConfig, CatalogEntry, build_catalog, load_bundle_configs, merged_dictionary
from .reconcile import AssetReconciler, referenced_identifiers, script_modules
from .scanner import ResourceListing, derive_identifier, scan_resource_tree

__all__ = [
    "AssetCatalog",
    "AssetReconciler",
    "BundleConfig",
    "CatalogEntry",
    "ResourceListing",
    "build_catalog",
    "derive_identifier",
    "load_bundle_configs",
    "merged_dictionary",
    "referenced_identifiers",
    "scan_resource_tree",
    "script_modules",
]
