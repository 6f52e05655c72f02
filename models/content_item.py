from __future__ import annotations

import mimetypes
import posixpath
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

WORK = "work"
INSIGHT = "insight"
CONTENT_KINDS = (WORK, INSIGHT)

# ACF keys holding a single media id, per kind
WORK_MEDIA_FIELDS = ("mainImage", "coverImage", "clientLogo")
INSIGHT_MEDIA_FIELDS = ("mainImage", "thumbnailImage")


def _slugify(value: str) -> str:
    text = value.strip().lower()
    out = []
    prev_dash = False
    for ch in text:
        if ch.isalnum():
            out.append(ch)
            prev_dash = False
        else:
            if not prev_dash:
                out.append("-")
            prev_dash = True
    slug = "".join(out).strip("-")
    return slug[:200]


def filename_from_url(url: str) -> str:
    """Last path segment of ``url``, percent-decoded, without query or fragment."""
    path = urlsplit(url or "").path
    return unquote(posixpath.basename(path.rstrip("/")))


class MediaRef(BaseModel):
    """A pointer to a binary asset living in the source CMS."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    source_url: str = Field(..., alias="sourceUrl", min_length=1)
    filename: str = ""
    mime_type: str = Field("", alias="mimeType")
    alt_text: Optional[str] = Field(None, alias="altText")
    source_id: Optional[Union[int, str]] = Field(None, alias="sourceId")
    destination_id: Optional[int] = Field(None, alias="destinationId")
    width: Optional[int] = None
    height: Optional[int] = None

    @model_validator(mode="after")
    def _derive_file_info(self) -> "MediaRef":
        if not self.filename:
            self.filename = filename_from_url(self.source_url)
        if not self.mime_type and self.filename:
            self.mime_type = mimetypes.guess_type(self.filename)[0] or ""
        return self


class ContentItem(BaseModel):
    """
    Canonical, CMS-independent form of a work (portfolio project) or an
    insight (article).  Produced by the normalizer, consumed by the sync
    driver and the export script.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, str_strip_whitespace=True)

    kind: str = WORK
    source_id: Optional[Union[int, str]] = Field(None, alias="sourceId")
    document_id: Optional[str] = Field(None, alias="documentId")
    name: str = ""
    slug: str = Field(..., min_length=1)
    status: Optional[str] = None
    featured: bool = False
    tags: List[str] = Field(default_factory=list)
    publish_date: Optional[datetime] = Field(None, alias="publishDate")

    body: Optional[str] = None
    description: Optional[str] = None
    brief: Optional[str] = None
    scope: Optional[str] = None
    details: Optional[str] = None
    client: Optional[str] = None
    video_url: Optional[str] = Field(None, alias="videoUrl")

    main_image: Optional[MediaRef] = Field(None, alias="mainImage")
    cover_image: Optional[MediaRef] = Field(None, alias="coverImage")
    client_logo: Optional[MediaRef] = Field(None, alias="clientLogo")
    thumbnail_image: Optional[MediaRef] = Field(None, alias="thumbnailImage")
    gallery: List[MediaRef] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _ensure_slug(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        slug = data.get("slug")
        if isinstance(slug, str) and slug.strip():
            return data
        name = data.get("name")
        if isinstance(name, str) and name.strip():
            return {**data, "slug": _slugify(name)}
        return data

    @field_validator("kind")
    @classmethod
    def _known_kind(cls, v: str) -> str:
        if v not in CONTENT_KINDS:
            raise ValueError(f"unknown content kind {v!r}")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def _dedup_tags(cls, v: Optional[List[str]]):
        if not v:
            return []
        seen = set()
        deduped = []
        for item in v:
            label = str(item).strip()
            if label and label.lower() not in seen:
                seen.add(label.lower())
                deduped.append(label)
        return deduped

    @field_validator("publish_date")
    @classmethod
    def _aware_date(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def media_fields(self) -> Dict[str, Optional[MediaRef]]:
        """Single-valued media slots relevant to this kind, keyed by ACF name."""
        slots = {
            "mainImage": self.main_image,
            "coverImage": self.cover_image,
            "clientLogo": self.client_logo,
            "thumbnailImage": self.thumbnail_image,
        }
        names = WORK_MEDIA_FIELDS if self.kind == WORK else INSIGHT_MEDIA_FIELDS
        return {name: slots[name] for name in names}

    def date_gmt(self) -> Optional[str]:
        """Publish date as WordPress expects it in ``date_gmt`` (UTC, no offset)."""
        if self.publish_date is None:
            return None
        return self.publish_date.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")

    def to_wordpress_payload(
        self,
        *,
        content: Optional[str],
        featured_media: Optional[int] = None,
        tag_ids: Optional[List[int]] = None,
    ) -> Dict[str, Any]:
        """Core post body for ``POST /wp/v2/{type}`` (ACF is written separately)."""
        payload: Dict[str, Any] = {
            "title": self.name or self.slug,
            "slug": self.slug,
            "status": "publish",
            "content": content or "",
        }
        if featured_media and featured_media > 0:
            payload["featured_media"] = featured_media
        if self.kind == INSIGHT:
            if self.publish_date is not None:
                payload["date_gmt"] = self.date_gmt()
            if tag_ids:
                payload["tags"] = list(tag_ids)
        return payload

    def to_acf_fields(
        self,
        media_ids: Optional[Dict[str, Any]] = None,
        rich_text: Optional[Dict[str, Optional[str]]] = None,
    ) -> Dict[str, Any]:
        """
        ACF body for this item.

        :param media_ids: ACF media key -> destination id (``gallery`` -> list).
            Missing keys and placeholder ids are left out.
        :param rich_text: Sanitized replacements for the rich fields, keyed by
            attribute name (``body``, ``brief``, ...).
        """
        media_ids = media_ids or {}
        rich_text = rich_text or {}

        def text(attr: str) -> Optional[str]:
            return rich_text[attr] if attr in rich_text else getattr(self, attr)

        if self.kind == WORK:
            fields: Dict[str, Any] = {
                "status": self.status or "completed",
                "featured": self.featured,
                "brief": text("brief") or "",
                "scope": text("scope") or "",
                "details": text("details") or "",
                "client": self.client or "",
                "videoUrl": self.video_url or "",
            }
            gallery = [i for i in (media_ids.get("gallery") or []) if isinstance(i, int) and i > 0]
            if gallery:
                fields["gallery"] = gallery
        else:
            fields = {
                "featured": self.featured,
                "description": self.description or "",
            }
        for name in self.media_fields():
            media_id = media_ids.get(name)
            if isinstance(media_id, int) and media_id > 0:
                fields[name] = media_id
        return fields
