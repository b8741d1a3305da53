from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_ENDPOINT = "/api/webvisor/events"
DEFAULT_EXCLUDE_ATTRIBUTE = "data-ym-disable"
DEFAULT_MASK_ATTRIBUTE = "data-ym-mask"
RESIZE_THROTTLE_MS = 200

# page storage keys
SAMPLING_KEY = "wv_sampled"
SESSION_KEY = "wv_session"


class _Options(BaseModel):
    # accepts both snake_case and the camelCase option names of the JS snippet
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PrivacyConfig(_Options):
    mask_all_inputs: bool = False
    mask_sensitive_inputs: bool = True
    exclude_attribute: str = DEFAULT_EXCLUDE_ATTRIBUTE
    mask_attribute: str = DEFAULT_MASK_ATTRIBUTE
    exclude_pages: List[str] = Field(default_factory=list, description="regex patterns matched against the URL")


class RecorderConfig(_Options):
    endpoint: str = DEFAULT_ENDPOINT
    sampling_rate: float = Field(100, ge=0, le=100, description="percent of visitors recorded")
    batch_size: int = Field(50, gt=0)
    batch_interval: int = Field(1000, gt=0, description="ms between timed flushes")
    mouse_throttle: int = Field(50, ge=0)
    scroll_throttle: int = Field(100, ge=0)
    privacy: PrivacyConfig = Field(default_factory=PrivacyConfig)
