"""
Top-level package for the CMS → WordPress content sync utility.

This package bundles everything required to read works and insights from
Strapi (or CSV exports), normalize them into one canonical shape, re-host
their media in the WordPress library, clean their rich text and write them
to WordPress without creating duplicates.  Modules are split into
subpackages:

* :mod:`cms_sync.extractors` – readers for Strapi, CSV exports and WordPress
* :mod:`cms_sync.parsers` – record normalization and rich-text cleanup
* :mod:`cms_sync.migrators` – WordPress REST interactions and media resolution
* :mod:`cms_sync.utils` – slugs, tags, retries, error logging and reports

Orchestration of a full run lives in :mod:`cms_sync.sync_tool`; the one-off
repair passes live in :mod:`cms_sync.repairs`.
"""
