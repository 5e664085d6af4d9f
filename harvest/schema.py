import logging
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from .normalizer import dedupe_image_urls, normalize, normalize_image_url

logger = logging.getLogger(__name__)


def _as_text(v: Any) -> Any:
    if v is None:
        return ""
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    return v


class RawListing(BaseModel):
    """One candidate item as yielded by a listing source."""
    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1)
    price: str = Field(min_length=1)
    description: str = ""
    location: str = ""
    link: str = Field(min_length=1)
    image_urls: List[str] = Field(min_length=1)

    @field_validator("title", "price", "description", "location", "link", mode="before")
    @classmethod
    def _text(cls, v):
        return _as_text(v)

    @field_validator("image_urls", mode="before")
    @classmethod
    def _images(cls, v):
        if isinstance(v, str):
            v = [v]
        return dedupe_image_urls(v or [])

    @model_validator(mode="after")
    def _identity(self):
        if not normalize(self.link):
            raise ValueError("link has no identity")
        return self

    def to_record(self) -> "Record":
        return Record(
            title=self.title,
            price=self.price,
            description=self.description,
            location=self.location,
            link=self.link,
            main_image=self.image_urls[0],
            other_images=self.image_urls[1:],
        )


class Record(BaseModel):
    # unknown keys from older snapshots ride along untouched
    model_config = ConfigDict(extra="allow")

    title: str = ""
    price: str = ""
    description: str = ""
    location: str = ""
    link: str
    main_image: str = ""
    other_images: List[str] = Field(default_factory=list)
    main_image_local: Optional[str] = None
    other_images_local: List[str] = Field(default_factory=list)

    @field_validator("title", "price", "description", "location", "main_image", mode="before")
    @classmethod
    def _text(cls, v):
        return _as_text(v)

    @field_validator("other_images", "other_images_local", mode="before")
    @classmethod
    def _lists(cls, v):
        return [] if v is None else v

    @field_validator("main_image_local", mode="before")
    @classmethod
    def _local(cls, v):
        return v or None

    @model_validator(mode="after")
    def _unique_images(self):
        # extras never repeat each other or the main image
        main = normalize_image_url(self.main_image)
        extras = [u for u in dedupe_image_urls(self.other_images) if normalize_image_url(u) != main]
        if extras != self.other_images:
            self.other_images = extras
            self.other_images_local = self.other_images_local[:len(extras)]
        return self

    @property
    def identity_key(self) -> str:
        return normalize(self.link)

    @property
    def is_admissible(self) -> bool:
        return bool(self.title.strip() and self.price.strip()
                    and self.identity_key and self.main_image.strip())

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


def admit(raw: Union[Dict[str, Any], RawListing, Record]) -> Optional[Record]:
    """Validate one raw candidate; None when it may not enter the merge."""
    if isinstance(raw, Record):
        return raw if raw.is_admissible else None
    if isinstance(raw, RawListing):
        return raw.to_record()
    try:
        return RawListing.model_validate(raw).to_record()
    except ValidationError as exc:
        logger.debug("[ADMIT] rejected %r: %s", raw, exc.errors())
        return None
