"""Centralized configuration for folklore using Pydantic Settings."""

from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TokenizerConfig(BaseModel):
    """Options recognized by the tokenizer.

    Ingestion and querying must share one instance; a mismatch between the
    two means query terms never line up with indexed terms.
    """

    model_config = {"extra": "forbid", "frozen": True}

    n_gram_max: Annotated[
        int,
        Field(
            ge=1,
            le=16,
            description="Upper bound on the length of character n-grams extracted from each word",
            examples=[5],
        ),
    ] = 5

    n_gram_min: Annotated[
        int,
        Field(
            ge=1,
            le=16,
            description="Lower bound on the length of character n-grams extracted from each word",
        ),
    ] = 1

    case_fold: Annotated[
        bool,
        Field(description="Lowercase text before splitting it into terms"),
    ] = True

    stop_words: Annotated[
        frozenset[str],
        Field(
            description="Terms excluded from indexing and from queries",
            examples=[["the", "a", "of"]],
        ),
    ] = frozenset()

    @field_validator("stop_words", mode="before")
    @classmethod
    def _normalize_stop_words(cls, value: object) -> frozenset[str]:
        if value is None or value == "":
            return frozenset()
        if isinstance(value, str):
            value = value.split(",")
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("stop_words must be a string or a collection of strings")
        return frozenset(str(item).strip() for item in value if str(item).strip())

    @model_validator(mode="after")
    def _check_n_gram_bounds(self) -> "TokenizerConfig":
        if self.n_gram_min > self.n_gram_max:
            raise ValueError(f"n_gram_min ({self.n_gram_min}) must not exceed n_gram_max ({self.n_gram_max})")
        return self


class RankingConfig(BaseModel):
    """Ranking parameters with safe defaults."""

    model_config = {"extra": "forbid", "frozen": True}

    bm25_k1: Annotated[
        float,
        Field(
            ge=0.5,
            le=3.0,
            description="BM25 term frequency saturation parameter",
            examples=[1.2],
        ),
    ] = 1.2

    bm25_b: Annotated[
        float,
        Field(
            ge=0.1,
            le=1.0,
            description="BM25 length normalization parameter",
            examples=[0.75],
        ),
    ] = 0.75

    phrase_bonus: Annotated[
        bool,
        Field(description="Reward documents where query words appear close together"),
    ] = True

    match_mode: Annotated[
        Literal["all", "any"],
        Field(
            description="'all' requires every query term in a match (AND); 'any' ranks partial matches by coverage",
        ),
    ] = "all"


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Nested options use a double underscore, e.g.
    ``FOLKLORE_TOKENIZER__N_GRAM_MAX=4``.
    """

    model_config = SettingsConfigDict(
        env_prefix="FOLKLORE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    tokenizer: TokenizerConfig = Field(default_factory=TokenizerConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)

    database_path: Path = Field(
        default=Path("/tmp/folklore.sqlite3"),
        description="SQLite file holding the persisted index snapshot",
    )

    default_page_size: int = Field(default=10, ge=1, description="Results per page when the caller gives none")
    max_page_size: int = Field(default=100, ge=1, description="Upper bound on results per page")

    log_level: str = Field(default="info", pattern=r"^(debug|info|warning|error|critical)$")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    logger_levels: dict[str, str] = Field(
        default_factory=dict,
        description="Per-logger level overrides, e.g. {'folklore.search': 'warning'}",
    )

    @model_validator(mode="after")
    def _check_page_sizes(self) -> "Settings":
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")
        return self

    def clamp_page_size(self, page_size: int | None) -> int:
        """Return a page size within the configured bounds.

        Values that are not integers pass through untouched so the query
        engine can reject them.
        """
        if page_size is None:
            return self.default_page_size
        if not isinstance(page_size, int) or isinstance(page_size, bool):
            return page_size
        return min(page_size, self.max_page_size)
