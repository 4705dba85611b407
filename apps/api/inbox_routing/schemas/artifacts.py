"""Inbound artifact variants.

One variant per artifact kind, each carrying only the fields its dedup
strategy needs. Discriminated on ``kind``.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from inbox_routing.db.enums import DedupKeyType


class _ArtifactBase(BaseModel):
    provider_message_id: str | None = Field(None, max_length=255)

    def dedup_keys(self) -> list[tuple[DedupKeyType, str]]:
        """Identity keys in lookup priority order (empty = always unique)."""
        keys: list[tuple[DedupKeyType, str]] = []
        if self.provider_message_id:
            keys.append((DedupKeyType.PROVIDER_MESSAGE_ID, self.provider_message_id))
        return keys


class TextArtifact(_ArtifactBase):
    """Plain text message."""
    kind: Literal["text"] = "text"


class _MediaArtifact(_ArtifactBase):
    media_url: str | None = None
    content_hash: str | None = Field(None, max_length=128)
    file_name: str | None = Field(None, max_length=255)
    file_size: int | None = Field(None, ge=0)

    def dedup_keys(self) -> list[tuple[DedupKeyType, str]]:
        keys = super().dedup_keys()
        if self.media_url:
            keys.append((DedupKeyType.MEDIA_URL, self.media_url))
        if self.content_hash:
            keys.append((DedupKeyType.CONTENT_HASH, self.content_hash.lower()))
        elif self.file_name and self.file_size is not None:
            # Only when no hash is available
            keys.append(
                (DedupKeyType.FILE_SIGNATURE, f"{self.file_name.strip().lower()}:{self.file_size}")
            )
        return keys


class ImageArtifact(_MediaArtifact):
    kind: Literal["image"] = "image"


class VideoArtifact(_MediaArtifact):
    kind: Literal["video"] = "video"


class DocumentArtifact(_MediaArtifact):
    kind: Literal["document"] = "document"


class AudioArtifact(_MediaArtifact):
    """Audio file or voice note. Voice notes have no stable identity."""
    kind: Literal["audio"] = "audio"
    is_recorded: bool = False

    def dedup_keys(self) -> list[tuple[DedupKeyType, str]]:
        if self.is_recorded:
            return []
        return super().dedup_keys()


Artifact = Annotated[
    Union[TextArtifact, ImageArtifact, AudioArtifact, VideoArtifact, DocumentArtifact],
    Field(discriminator="kind"),
]
