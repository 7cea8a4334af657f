"""
Services package for the catalog service

This package contains the sync pipeline and the query components.
"""
from mediathek.services.catalog_parser_service import parse_catalog
from mediathek.services.catalog_store import CatalogStore
from mediathek.services.index_view import LazyIndexView
from mediathek.services.mirror_service import MirrorSelector, parse_mirror_list
from mediathek.services.scheduler_service import SyncScheduler
from mediathek.services.stream_decoder import StreamDecoder
from mediathek.services.sync_controller import CatalogSyncController

__all__ = [
    'CatalogStore',
    'CatalogSyncController',
    'LazyIndexView',
    'MirrorSelector',
    'StreamDecoder',
    'SyncScheduler',
    'parse_catalog',
    'parse_mirror_list',
]
