# retouch/schemas/metadata.py
import base64
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- raw tag bag: ordered mapping of string key -> tagged value ---

class RawString(BaseModel):
    kind: Literal["string"] = "string"
    value: str


class RawNumber(BaseModel):
    kind: Literal["number"] = "number"
    value: Union[int, float]


class RawBoolean(BaseModel):
    kind: Literal["boolean"] = "boolean"
    value: bool


class RawBytes(BaseModel):
    kind: Literal["bytes"] = "bytes"
    value: str = Field(..., description="Base64-encoded payload")

    @classmethod
    def from_bytes(cls, data: bytes) -> "RawBytes":
        return cls(value=base64.b64encode(data).decode("ascii"))

    @property
    def data(self) -> bytes:
        return base64.b64decode(self.value)


class RawMap(BaseModel):
    kind: Literal["map"] = "map"
    value: Dict[str, "RawValue"] = Field(default_factory=dict)


RawValue = Annotated[
    Union[RawString, RawNumber, RawBoolean, RawBytes, RawMap],
    Field(discriminator="kind"),
]

RawMap.model_rebuild()


def to_raw_value(obj: Any) -> RawValue:
    """Convert a decoded tool value into the tagged union without losing its type."""
    if isinstance(obj, bool):
        return RawBoolean(value=obj)
    if isinstance(obj, (int, float)):
        return RawNumber(value=obj)
    if isinstance(obj, (bytes, bytearray)):
        return RawBytes.from_bytes(bytes(obj))
    if isinstance(obj, str):
        # exiftool -b emits binary values as "base64:<payload>"
        if obj.startswith("base64:"):
            try:
                return RawBytes.from_bytes(base64.b64decode(obj[len("base64:"):], validate=True))
            except ValueError:
                return RawString(value=obj)
        return RawString(value=obj)
    if isinstance(obj, dict):
        return RawMap(value={str(k): to_raw_value(v) for k, v in obj.items()})
    if isinstance(obj, (list, tuple)):
        return RawMap(value={str(i): to_raw_value(v) for i, v in enumerate(obj)})
    return RawString(value=str(obj))


# --- structured sections ---

class ExifData(CamelModel):
    make: Optional[str] = None
    model: Optional[str] = None
    software: Optional[str] = None
    lens_model: Optional[str] = None
    focal_length: Optional[float] = None
    focal_length_in_35mm: Optional[float] = Field(None, alias="focalLengthIn35mm")
    f_number: Optional[float] = None
    exposure_time: Optional[float] = None
    iso: Optional[float] = None
    exposure_bias: Optional[float] = None
    metering_mode: Optional[str] = None
    white_balance: Optional[str] = None
    flash: Optional[str] = None
    color_space: Optional[str] = None
    orientation: Optional[int] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    image_description: Optional[str] = None
    copyright: Optional[str] = None
    artist: Optional[str] = None


class GpsData(CamelModel):
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    altitude_ref: Optional[str] = None
    speed: Optional[float] = None
    direction: Optional[float] = None
    dest_bearing: Optional[float] = None
    timestamp: Optional[str] = None


class DateData(CamelModel):
    date_time_original: Optional[str] = None
    date_time_digitized: Optional[str] = None
    modify_date: Optional[str] = None
    offset_time_original: Optional[str] = None
    offset_time_digitized: Optional[str] = None
    offset_time: Optional[str] = None


class IptcData(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    keywords: Optional[List[str]] = None
    copyright: Optional[str] = None
    creator: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None


class ImageMetadata(CamelModel):
    exif: Optional[ExifData] = None
    gps: Optional[GpsData] = None
    dates: Optional[DateData] = None
    iptc: Optional[IptcData] = None
    xmp: Optional[Dict[str, RawValue]] = None
    icc: Optional[Dict[str, RawValue]] = None
    raw: Dict[str, RawValue] = Field(default_factory=dict)

    @classmethod
    def empty(cls) -> "ImageMetadata":
        return cls()

    def is_empty(self) -> bool:
        return not any([self.exif, self.gps, self.dates, self.iptc, self.xmp, self.icc, self.raw])


class MetadataSection(str, Enum):
    EXIF = "exif"
    GPS = "gps"
    DATES = "dates"
    IPTC = "iptc"


class MetadataChange(CamelModel):
    section: MetadataSection
    field: str = Field(..., description="Field name inside the section, e.g. 'dateTimeOriginal'")
    value: Any = Field(None, description="New value; its type depends on the field")
