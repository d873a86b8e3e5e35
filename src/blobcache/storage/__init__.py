"""Listing sources for remote containers."""

from blobcache.storage.backend import (
    AzureListingSource,
    DirectoryListingSource,
    ListingPage,
    ListingSource,
    build_listing_source,
)

__all__ = [
    "ListingSource",
    "ListingPage",
    "AzureListingSource",
    "DirectoryListingSource",
    "build_listing_source",
]
