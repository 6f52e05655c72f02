"""
WordPress API migrators and helpers.

This subpackage provides the REST client used for every read and write
against WordPress (posts, ACF fields, media and tags) and the media
resolver that turns source asset URLs into WordPress media ids.  Rate
limiting, automatic retries and the dry-run write guard are handled here.
"""
