"""Typed model of the allow-list of trusted websites.

The external config loader decides which sites are trusted; this module
only validates what it hands over so the crawler and indexer can agree on
a normalized set of source URLs.
"""

import json
from pathlib import Path
from typing import Annotated
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field, field_validator, model_validator


def _normalize_url(value: str) -> str:
    """Lowercase scheme and host, drop query and fragment."""

    parts = urlsplit(value.strip())
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"Expected an absolute http(s) URL, got {value!r}")
    path = parts.path or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, "", ""))


def _origin(url: str) -> tuple[str, str]:
    parts = urlsplit(url)
    return parts.scheme.lower(), parts.netloc.lower()


class Website(BaseModel):
    """One allow-listed source."""

    model_config = {"extra": "forbid", "frozen": True}

    url: Annotated[
        str,
        Field(
            description="Entry URL of the trusted site",
            examples=["https://aws.amazon.com/builders-library/"],
        ),
    ]

    recursively_crawl: Annotated[
        bool,
        Field(description="Follow same-origin links discovered from the entry URL"),
    ] = True

    @field_validator("url")
    @classmethod
    def _validate_url(cls, value: str) -> str:
        return _normalize_url(value)


class SourcesConfig(BaseModel):
    """The allow-list handed to the crawler."""

    model_config = {"extra": "forbid"}

    websites: list[Website] = Field(default_factory=list)

    @model_validator(mode="after")
    def _dedupe_websites(self) -> "SourcesConfig":
        seen: set[str] = set()
        unique: list[Website] = []
        for website in self.websites:
            if website.url in seen:
                continue
            seen.add(website.url)
            unique.append(website)
        self.websites = unique
        return self

    @classmethod
    def from_json_file(cls, path: Path) -> "SourcesConfig":
        """Load the allow-list from a JSON file.

        Raises:
            FileNotFoundError: If the file doesn't exist
            pydantic.ValidationError: If the content is invalid
        """
        if not path.exists():
            raise FileNotFoundError(f"Sources config not found: {path}")

        with path.open(encoding="utf-8") as f:
            data = json.load(f)
        return cls.model_validate(data)

    def source_urls(self) -> list[str]:
        return [website.url for website in self.websites]

    def is_allowed(self, url: str) -> bool:
        """Return True when ``url`` shares an origin with an allow-listed website."""
        try:
            candidate = _origin(_normalize_url(url))
        except ValueError:
            return False
        return any(_origin(website.url) == candidate for website in self.websites)
