"""
Extractors for the content sources.

This subpackage reads raw records from the Strapi REST API, from the CSV
exports kept next to the project and from WordPress itself.  Records are
returned as plain dictionaries; turning them into
:class:`~models.content_item.ContentItem` objects is the normalizer's job.
"""
