"""Translation between group-qualified tool tags and the structured metadata schema."""
import math
import re
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic.alias_generators import to_camel

from ...schemas.metadata import (
    DateData,
    ExifData,
    GpsData,
    ImageMetadata,
    IptcData,
    MetadataChange,
    MetadataSection,
    to_raw_value,
)

# tags that only describe the scratch file the tool was pointed at
_SKIPPED_GROUPS = ("System:", "ExifTool:")

_DMS = re.compile(r"(\d+(?:\.\d+)?)\s*deg\s*(\d+(?:\.\d+)?)'\s*(\d+(?:\.\d+)?)\"?\s*([NSEW])?")
_OFFSET = re.compile(r"^[+-]\d{2}:\d{2}$")


def _getter(flat: Dict[str, Any]) -> Callable[..., Any]:
    def get(*keys: str) -> Any:
        for key in keys:
            value = flat.get(key)
            if value is not None and value != "":
                return value
        return None
    return get


def parse_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if "/" in text:
        num, _, den = text.partition("/")
        try:
            return float(num) / float(den.split()[0])
        except (ValueError, ZeroDivisionError):
            return None
    match = re.match(r"^[+-]?\d+(?:\.\d+)?", text)
    return float(match.group(0)) if match else None


def parse_coordinate(value: Any, ref: Any = None) -> Optional[float]:
    """Decimal degrees, signed by hemisphere; accepts numbers or "37 deg 23' 14.39\" N"."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        decimal = float(value)
    else:
        match = _DMS.search(str(value))
        if match:
            degrees, minutes, seconds = (float(g) for g in match.group(1, 2, 3))
            decimal = degrees + minutes / 60 + seconds / 3600
            ref = ref or match.group(4)
        else:
            decimal = parse_number(value)
            if decimal is None:
                return None
    if ref and str(ref).strip().upper()[:1] in ("S", "W"):
        decimal = -abs(decimal)
    return decimal


def _str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _int(value: Any) -> Optional[int]:
    number = parse_number(value)
    return None if number is None else int(number)


def extract_exif(flat: Dict[str, Any]) -> Optional[ExifData]:
    get = _getter(flat)
    data = ExifData(
        make=_str(get("IFD0:Make", "EXIF:Make", "Make")),
        model=_str(get("IFD0:Model", "EXIF:Model", "Model")),
        software=_str(get("IFD0:Software", "EXIF:Software", "Software")),
        lens_model=_str(get("ExifIFD:LensModel", "EXIF:LensModel", "LensModel")),
        focal_length=parse_number(get("ExifIFD:FocalLength", "EXIF:FocalLength", "FocalLength")),
        focal_length_in_35mm=parse_number(get(
            "ExifIFD:FocalLengthIn35mmFormat", "EXIF:FocalLengthIn35mmFormat", "FocalLengthIn35mmFormat")),
        f_number=parse_number(get("ExifIFD:FNumber", "EXIF:FNumber", "FNumber")),
        exposure_time=parse_number(get("ExifIFD:ExposureTime", "EXIF:ExposureTime", "ExposureTime")),
        iso=parse_number(get("ExifIFD:ISO", "EXIF:ISO", "ISO")),
        exposure_bias=parse_number(get(
            "ExifIFD:ExposureCompensation", "EXIF:ExposureCompensation", "ExposureBiasValue")),
        metering_mode=_str(get("ExifIFD:MeteringMode", "EXIF:MeteringMode", "MeteringMode")),
        white_balance=_str(get("ExifIFD:WhiteBalance", "EXIF:WhiteBalance", "WhiteBalance")),
        flash=_str(get("ExifIFD:Flash", "EXIF:Flash", "Flash")),
        color_space=_str(get("ExifIFD:ColorSpace", "EXIF:ColorSpace", "ColorSpace")),
        orientation=_int(get("IFD0:Orientation", "EXIF:Orientation", "Orientation")),
        image_width=_int(get("ExifIFD:ExifImageWidth", "IFD0:ImageWidth", "File:ImageWidth", "ImageWidth")),
        image_height=_int(get("ExifIFD:ExifImageHeight", "IFD0:ImageHeight", "File:ImageHeight", "ImageHeight")),
        image_description=_str(get("IFD0:ImageDescription", "ImageDescription")),
        copyright=_str(get("IFD0:Copyright", "Copyright")),
        artist=_str(get("IFD0:Artist", "Artist")),
    )
    return data if data.model_dump(exclude_none=True) else None


def extract_gps(flat: Dict[str, Any]) -> Optional[GpsData]:
    get = _getter(flat)
    lat = get("Composite:GPSLatitude")
    lon = get("Composite:GPSLongitude")
    latitude = parse_coordinate(lat) if lat is not None else parse_coordinate(
        get("GPS:GPSLatitude", "EXIF:GPSLatitude", "GPSLatitude"),
        get("GPS:GPSLatitudeRef", "EXIF:GPSLatitudeRef", "GPSLatitudeRef"),
    )
    longitude = parse_coordinate(lon) if lon is not None else parse_coordinate(
        get("GPS:GPSLongitude", "EXIF:GPSLongitude", "GPSLongitude"),
        get("GPS:GPSLongitudeRef", "EXIF:GPSLongitudeRef", "GPSLongitudeRef"),
    )
    if latitude is None or longitude is None:
        return None
    return GpsData(
        latitude=latitude,
        longitude=longitude,
        altitude=parse_number(get("GPS:GPSAltitude", "EXIF:GPSAltitude", "GPSAltitude")),
        altitude_ref=_str(get("GPS:GPSAltitudeRef", "EXIF:GPSAltitudeRef", "GPSAltitudeRef")),
        speed=parse_number(get("GPS:GPSSpeed", "EXIF:GPSSpeed", "GPSSpeed")),
        direction=parse_number(get("GPS:GPSImgDirection", "EXIF:GPSImgDirection", "GPSImgDirection")),
        dest_bearing=parse_number(get("GPS:GPSDestBearing", "EXIF:GPSDestBearing", "GPSDestBearing")),
        timestamp=_str(get("Composite:GPSDateTime", "GPS:GPSTimeStamp", "EXIF:GPSTimeStamp", "GPSTimeStamp")),
    )


def extract_dates(flat: Dict[str, Any]) -> Optional[DateData]:
    get = _getter(flat)
    data = DateData(
        date_time_original=_str(get("ExifIFD:DateTimeOriginal", "EXIF:DateTimeOriginal", "DateTimeOriginal")),
        date_time_digitized=_str(get(
            "ExifIFD:CreateDate", "EXIF:CreateDate", "DateTimeDigitized", "CreateDate")),
        modify_date=_str(get("IFD0:ModifyDate", "EXIF:ModifyDate", "ModifyDate", "DateTime")),
        offset_time_original=_str(get("ExifIFD:OffsetTimeOriginal", "EXIF:OffsetTimeOriginal", "OffsetTimeOriginal")),
        offset_time_digitized=_str(get(
            "ExifIFD:OffsetTimeDigitized", "EXIF:OffsetTimeDigitized", "OffsetTimeDigitized")),
        offset_time=_str(get("ExifIFD:OffsetTime", "EXIF:OffsetTime", "OffsetTime")),
    )
    return data if data.model_dump(exclude_none=True) else None


def extract_iptc(flat: Dict[str, Any]) -> Optional[IptcData]:
    get = _getter(flat)
    keywords = get("IPTC:Keywords", "XMP-dc:Subject", "Keywords")
    if keywords is not None and not isinstance(keywords, list):
        keywords = [keywords]
    data = IptcData(
        title=_str(get("IPTC:ObjectName", "XMP-dc:Title", "ObjectName")),
        description=_str(get(
            "IPTC:Caption-Abstract", "XMP-dc:Description", "IFD0:ImageDescription", "Caption", "ImageDescription")),
        keywords=[str(k) for k in keywords] if keywords else None,
        copyright=_str(get("IPTC:CopyrightNotice", "XMP-dc:Rights", "IFD0:Copyright", "CopyrightNotice")),
        creator=_str(get("IPTC:By-line", "XMP-dc:Creator", "IFD0:Artist", "Creator", "Artist")),
        city=_str(get("IPTC:City", "XMP-photoshop:City", "City")),
        country=_str(get("IPTC:Country-PrimaryLocationName", "XMP-photoshop:Country", "Country")),
    )
    return data if data.model_dump(exclude_none=True) else None


def _group_subset(flat: Dict[str, Any], prefix: str) -> Optional[Dict[str, Any]]:
    subset = {k: to_raw_value(v) for k, v in flat.items() if k.startswith(prefix)}
    return subset or None


def build_metadata(flat: Dict[str, Any]) -> ImageMetadata:
    kept = {k: v for k, v in flat.items() if not k.startswith(_SKIPPED_GROUPS)}
    return ImageMetadata(
        exif=extract_exif(kept),
        gps=extract_gps(kept),
        dates=extract_dates(kept),
        iptc=extract_iptc(kept),
        xmp=_group_subset(kept, "XMP"),
        icc=_group_subset(kept, "ICC"),
        raw={k: to_raw_value(v) for k, v in kept.items()},
    )


# --- change triples -> tag assignments ---

class ChangeError(ValueError):
    pass


_DATE_TAGS = {
    "dateTimeOriginal": "ExifIFD:DateTimeOriginal",
    "dateTimeDigitized": "ExifIFD:CreateDate",
    "modifyDate": "IFD0:ModifyDate",
}
_OFFSET_TAGS = {
    "offsetTimeOriginal": "ExifIFD:OffsetTimeOriginal",
    "offsetTimeDigitized": "ExifIFD:OffsetTimeDigitized",
    "offsetTime": "ExifIFD:OffsetTime",
}
_EXIF_TEXT_TAGS = {
    "make": "IFD0:Make",
    "model": "IFD0:Model",
    "software": "IFD0:Software",
    "imageDescription": "IFD0:ImageDescription",
    "copyright": "IFD0:Copyright",
    "artist": "IFD0:Artist",
    "lensModel": "ExifIFD:LensModel",
}
_EXIF_NUMERIC_TAGS = {
    "fNumber": "ExifIFD:FNumber",
    "exposureTime": "ExifIFD:ExposureTime",
    "iso": "ExifIFD:ISO",
    "focalLength": "ExifIFD:FocalLength",
}
_IPTC_TAGS = {
    "title": ["IPTC:ObjectName", "XMP-dc:Title"],
    "description": ["IPTC:Caption-Abstract", "XMP-dc:Description", "IFD0:ImageDescription"],
    "copyright": ["IPTC:CopyrightNotice", "XMP-dc:Rights", "IFD0:Copyright"],
    "creator": ["IPTC:By-line", "XMP-dc:Creator", "IFD0:Artist"],
    "city": ["IPTC:City", "XMP-photoshop:City"],
    "country": ["IPTC:Country-PrimaryLocationName", "XMP-photoshop:Country"],
}


def to_exif_date(value: Any) -> str:
    text = str(value).strip()
    if re.match(r"^\d{4}:\d{2}:\d{2} \d{2}:\d{2}:\d{2}$", text):
        return text
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError as e:
        raise ChangeError(f"Invalid date value: {value!r}") from e
    return parsed.strftime("%Y:%m:%d %H:%M:%S")


def _number(value: Any, field: str) -> float:
    number = parse_number(value)
    if number is None or not math.isfinite(number):
        raise ChangeError(f"Invalid numeric value for {field}: {value!r}")
    return number


def _assign(tag: str, value: Any) -> str:
    return f"-{tag}=" if value is None else f"-{tag}={value}"


def _date_assignments(field: str, value: Any) -> List[str]:
    if field in _DATE_TAGS:
        return [_assign(_DATE_TAGS[field], None if value is None else to_exif_date(value))]
    if field in _OFFSET_TAGS:
        if value is not None and not _OFFSET.match(str(value)):
            raise ChangeError(f"Invalid UTC offset for {field}: {value!r}")
        return [_assign(_OFFSET_TAGS[field], value)]
    raise ChangeError(f"Unknown dates field: {field}")


def _gps_assignments(field: str, value: Any) -> List[str]:
    if field in ("latitude", "longitude"):
        tag, refs, limit = (
            ("GPSLatitude", ("N", "S"), 90) if field == "latitude" else ("GPSLongitude", ("E", "W"), 180)
        )
        if value is None:
            return [f"-GPS:{tag}=", f"-GPS:{tag}Ref="]
        number = _number(value, field)
        if abs(number) > limit:
            raise ChangeError(f"{field} out of range: {number}")
        return [f"-GPS:{tag}={abs(number)}", f"-GPS:{tag}Ref={refs[0] if number >= 0 else refs[1]}"]
    if field == "altitude":
        if value is None:
            return ["-GPS:GPSAltitude=", "-GPS:GPSAltitudeRef="]
        number = _number(value, field)
        return [f"-GPS:GPSAltitude={abs(number)}", f"-GPS:GPSAltitudeRef#={0 if number >= 0 else 1}"]
    raise ChangeError(f"Unknown gps field: {field}")


def _exif_assignments(field: str, value: Any) -> List[str]:
    if field in _EXIF_TEXT_TAGS:
        return [_assign(_EXIF_TEXT_TAGS[field], value)]
    if field in _EXIF_NUMERIC_TAGS:
        return [_assign(_EXIF_NUMERIC_TAGS[field], None if value is None else _number(value, field))]
    if field == "orientation":
        if value is None:
            return ["-IFD0:Orientation="]
        orientation = int(_number(value, field))
        if not 1 <= orientation <= 8:
            raise ChangeError(f"Orientation must be between 1 and 8, got {orientation}")
        return [f"-IFD0:Orientation#={orientation}"]
    raise ChangeError(f"Unknown exif field: {field}")


def _iptc_assignments(field: str, value: Any) -> List[str]:
    if field == "keywords":
        if value is None:
            items: List[str] = []
        elif isinstance(value, (list, tuple)):
            items = [str(v) for v in value]
        else:
            items = [s.strip() for s in str(value).split(",") if s.strip()]
        if not items:
            return ["-IPTC:Keywords=", "-XMP-dc:Subject="]
        return [f"-IPTC:Keywords={k}" for k in items] + [f"-XMP-dc:Subject={k}" for k in items]
    if field in _IPTC_TAGS:
        return [_assign(tag, value) for tag in _IPTC_TAGS[field]]
    raise ChangeError(f"Unknown iptc field: {field}")


_SECTION_HANDLERS = {
    MetadataSection.DATES: _date_assignments,
    MetadataSection.GPS: _gps_assignments,
    MetadataSection.EXIF: _exif_assignments,
    MetadataSection.IPTC: _iptc_assignments,
}


def changes_to_assignments(changes: List[MetadataChange]) -> List[str]:
    """Translate every change or raise ChangeError before anything is written."""
    assignments: List[str] = []
    for change in changes:
        field = to_camel(change.field) if "_" in change.field else change.field
        handler = _SECTION_HANDLERS.get(MetadataSection(change.section))
        if handler is None:
            raise ChangeError(f"Unknown metadata section: {change.section}")
        assignments.extend(handler(field, change.value))
    return assignments


def dimension_overrides(width: Optional[int], height: Optional[int]) -> Dict[str, int]:
    overrides: Dict[str, int] = {}
    if width:
        overrides["ImageWidth"] = int(width)
    if height:
        overrides["ImageHeight"] = int(height)
    return overrides

