"""Derive the filterable columns of a listing from its document.

Everything here is a pure function of the document: no clock, no I/O, no
randomness. Running ``derive_projections`` twice on the same document gives
the same result.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Final

LISTING_STATUSES: Final = frozenset({"online", "offline"})
DEFAULT_STATUS: Final = "online"
MINOR_UNITS_PER_MAJOR: Final = 100
AREA_META_NAME: Final = "使用面积"

PRICE_FIELDS: Final = ("rentPriceUnitListing", "rentPriceListing", "rentPrice", "price")
AREA_FIELDS: Final = ("rentArea", "area", "houseArea")
PAYMENT_FIELDS: Final = ("rentTerm", "payment", "paymentType")
PROVINCE_FIELDS: Final = ("provinceCode", "province_code")
CITY_FIELDS: Final = ("cityCode", "city_code")
DISTRICT_FIELDS: Final = ("districtCode", "district_code", "areaCode", "area_code")
TITLE_FIELDS: Final = ("houseTitle", "title", "name")
ADDRESS_FIELDS: Final = ("address", "location")
DISTRICT_NAME_FIELDS: Final = ("districtName", "hdicDistrictName", "hdic_district_name")
SCHOOL_FIELDS: Final = ("schoolName",)
OWNER_FIELDS: Final = ("landlordPhone", "ownerPhone", "ownerId", "phone")

_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")


@dataclass(slots=True, frozen=True)
class ListingProjection:
    """Column values derived from a listing document."""

    price_minor: int
    area_text: str
    payment_term: str
    province_code: str
    city_code: str
    district_code: str
    status: str
    search_text: str


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _texts(document: Mapping[str, Any], fields: Sequence[str]) -> list[str]:
    texts = []
    for name in fields:
        value = document.get(name)
        if _is_blank(value) or isinstance(value, (dict, list, bool)):
            continue
        texts.append(str(value).strip())
    return texts


def _first_text(document: Mapping[str, Any], fields: Sequence[str]) -> str:
    texts = _texts(document, fields)
    return texts[0] if texts else ""


def parse_price_minor(value: object) -> int | None:
    """Parse a price like ``1200``, ``"1,200"`` or ``"1200元/月"`` into minor units."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
    else:
        match = _NUMBER_RE.search(str(value).replace(",", ""))
        if match is None:
            return None
        amount = Decimal(match.group(0))
    if not amount.is_finite():
        return None
    try:
        minor = (amount * MINOR_UNITS_PER_MAJOR).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    except InvalidOperation:
        return None
    return int(minor)


def _price_minor(document: Mapping[str, Any]) -> int:
    for name in PRICE_FIELDS:
        parsed = parse_price_minor(document.get(name))
        if parsed is not None:
            return parsed
    return 0


def _area_text(document: Mapping[str, Any]) -> str:
    area = _first_text(document, AREA_FIELDS)
    if area:
        return area
    meta_info = document.get("metaInfo")
    if isinstance(meta_info, list):
        for item in meta_info:
            if isinstance(item, Mapping) and item.get("name") == AREA_META_NAME:
                desc = item.get("desc")
                if not _is_blank(desc):
                    return str(desc).strip()
    return ""


def _payment_term(document: Mapping[str, Any]) -> str:
    rent_term = document.get("rentTerm")
    if isinstance(rent_term, str) and rent_term.strip():
        return rent_term.strip()
    return _first_text(document, PAYMENT_FIELDS[1:])


def _status(document: Mapping[str, Any]) -> str:
    status = document.get("status")
    if isinstance(status, str) and status.strip().lower() in LISTING_STATUSES:
        return status.strip().lower()
    return DEFAULT_STATUS


def listing_title(document: Mapping[str, Any]) -> str:
    return _first_text(document, TITLE_FIELDS)


def listing_address(document: Mapping[str, Any]) -> str:
    return _first_text(document, ADDRESS_FIELDS) or _first_text(
        document, DISTRICT_NAME_FIELDS
    )


def owner_contact(document: Mapping[str, Any]) -> str | None:
    """Resolve the listing owner's contact, or ``None`` when the document has none."""

    return _first_text(document, OWNER_FIELDS) or None


def cover_url(document: Mapping[str, Any]) -> str:
    """First picture of the listing, as stored (no host prefix)."""

    direct = _first_text(document, ("mainPic", "roomMainPic"))
    if direct:
        return direct

    pictures = document.get("housePicture")
    if isinstance(pictures, list) and pictures:
        group = pictures[0]
        pic_list = group.get("picList") if isinstance(group, Mapping) else None
        if isinstance(pic_list, list) and pic_list and isinstance(pic_list[0], str):
            return pic_list[0]
    elif isinstance(pictures, str) and pictures.strip():
        return pictures.strip()

    fallback = _first_text(document, ("coverUrl",))
    if fallback:
        return fallback

    for name in ("pics", "images"):
        items = document.get(name)
        if isinstance(items, str) and items.strip():
            return items.strip()
        if isinstance(items, list) and items and isinstance(items[0], str):
            return items[0]
    return ""


def _search_text(document: Mapping[str, Any]) -> str:
    parts = []
    for fields in (TITLE_FIELDS, ADDRESS_FIELDS, DISTRICT_NAME_FIELDS, SCHOOL_FIELDS):
        parts.extend(_texts(document, fields))
    return " ".join(parts).lower()


def derive_projections(document: Mapping[str, Any]) -> ListingProjection:
    """Compute every derived listing column from ``document``."""

    return ListingProjection(
        price_minor=_price_minor(document),
        area_text=_area_text(document),
        payment_term=_payment_term(document),
        province_code=_first_text(document, PROVINCE_FIELDS),
        city_code=_first_text(document, CITY_FIELDS),
        district_code=_first_text(document, DISTRICT_FIELDS),
        status=_status(document),
        search_text=_search_text(document),
    )
