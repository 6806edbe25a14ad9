"""Per-job crawl and link check options."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobOptions(BaseModel):
    """Tuning knobs for discovery, crawling and link checking."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

    # Also visit internal pages found on the root page (and sitemap seeds).
    follow_internal_links: bool = True
    max_internal_pages: int = Field(default=10, ge=0)
    # Cap on discovered URLs passed to the checker.
    max_links_to_check: int = Field(default=500, ge=0)
    link_check_concurrency: int = Field(default=3, ge=1)
    link_batch_delay_ms: int = Field(default=600, ge=0)
    link_batch_jitter_ms: int = Field(default=400, ge=0)
    navigation_delay_ms: int = Field(default=800, ge=0)
    navigation_jitter_ms: int = Field(default=500, ge=0)


DEFAULT_OPTIONS = JobOptions()

OptionsInput = Union[JobOptions, Mapping[str, Any], None]


def normalize_options(options: OptionsInput = None, *, defaults: Optional[JobOptions] = None) -> JobOptions:
    """Merge a partial options object over the defaults.

    ``options`` may be ``None``, an existing ``JobOptions`` or a mapping using
    either snake_case or camelCase keys. Keys set to ``None`` are ignored.
    """
    base = defaults or DEFAULT_OPTIONS
    if options is None:
        return base
    if isinstance(options, JobOptions):
        overrides = options.model_dump(exclude_unset=True)
    else:
        overrides = {key: value for key, value in options.items() if value is not None}
    merged = base.model_dump()
    merged.update(JobOptions.model_validate(overrides).model_dump(exclude_unset=True))
    return JobOptions.model_validate(merged)
