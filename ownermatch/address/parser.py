"""
Address parsing and local-address detection.

Parses raw address strings from the assessor and donor exports into
structured Address values. Addresses on the local street network are
detected by zip, city, street database match or the property-location
assumption, and are completed with the configured local city, state and
zip.
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import phonenumbers
import usaddress
from phonenumbers import PhoneNumberFormat

from ..compare.similarity import normalize_key, normalize_spaces
from ..entities.contact import Address, ContactInfo
from .abbreviations import DEFAULT_STREET_TYPES
from .streets import StreetDatabase

logger = logging.getLogger(__name__)

LINE_BREAK_TAG = ":^#^:"
FIELD_BREAK_TAG = "::#^#::"

STATE_ABBREVIATIONS = {
    "alabama": "AL", "alaska": "AK", "arizona": "AZ", "arkansas": "AR",
    "california": "CA", "colorado": "CO", "connecticut": "CT", "delaware": "DE",
    "florida": "FL", "georgia": "GA", "hawaii": "HI", "idaho": "ID",
    "illinois": "IL", "indiana": "IN", "iowa": "IA", "kansas": "KS",
    "kentucky": "KY", "louisiana": "LA", "maine": "ME", "maryland": "MD",
    "massachusetts": "MA", "michigan": "MI", "minnesota": "MN", "mississippi": "MS",
    "missouri": "MO", "montana": "MT", "nebraska": "NE", "nevada": "NV",
    "new hampshire": "NH", "new jersey": "NJ", "new mexico": "NM", "new york": "NY",
    "north carolina": "NC", "north dakota": "ND", "ohio": "OH", "oklahoma": "OK",
    "oregon": "OR", "pennsylvania": "PA", "rhode island": "RI", "south carolina": "SC",
    "south dakota": "SD", "tennessee": "TN", "texas": "TX", "utah": "UT",
    "vermont": "VT", "virginia": "VA", "washington": "WA", "west virginia": "WV",
    "wisconsin": "WI", "wyoming": "WY", "district of columbia": "DC"
}

# Local detection methods, in evaluation order
MATCH_BY_ZIP = "zip"
MATCH_BY_CITY = "city"
MATCH_BY_STREET = "street"
MATCH_BY_PROPERTY_LOCATION = "property_location"


class UnmatchedStreetTracker:
    """
    Records local street strings that did not resolve to a canonical street.

    The collected rows feed curator review of the street database.
    """

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}

    def record(self, street: str, best_score: float, best_match: Optional[str] = None,
               source: Optional[str] = None):
        key = normalize_key(street)
        if not key:
            return
        entry = self.records.setdefault(key, {
            "street": key, "count": 0, "best_score": 0.0, "best_match": None, "sources": set()
        })
        entry["count"] += 1
        if best_score > entry["best_score"]:
            entry["best_score"] = best_score
            entry["best_match"] = best_match
        if source:
            entry["sources"].add(source)

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, street: str) -> bool:
        return normalize_key(street) in self.records

    def clear(self):
        self.records.clear()

    def to_frame(self) -> pd.DataFrame:
        columns = ["street", "count", "best_score", "best_match", "sources"]
        rows = [dict(r, sources=", ".join(sorted(r["sources"]))) for r in self.records.values()]
        df = pd.DataFrame(rows, columns=columns)
        if not df.empty:
            df = df.sort_values(["count", "street"], ascending=[False, True]).reset_index(drop=True)
        return df


class AddressParser:
    """
    Parses raw addresses into structured, locally-aware Address values.

    Args:
        config: ``address`` configuration section
        street_database: Canonical street database used for local detection
        tracker: Collector for local streets that fail to resolve
    """

    def __init__(self, config: Optional[Dict] = None, street_database: Optional[StreetDatabase] = None,
                 tracker: Optional[UnmatchedStreetTracker] = None):
        self.config = config or {}
        self.local_zip = self.config.get("local_zip", "02807")
        self.local_city = normalize_key(self.config.get("local_city", "BLOCK ISLAND"))
        self.local_city_aliases = {normalize_key(c) for c in
                                   self.config.get("local_city_aliases", ["BLOCK ISLAND", "NEW SHOREHAM"])}
        self.local_city_aliases.add(self.local_city)
        self.local_state = normalize_key(self.config.get("local_state", "RI"))
        self.placeholder_number = str(self.config.get("placeholder_number", "9999"))
        self.street_match_threshold = self.config.get("street_match_threshold", 0.80)
        self.default_phone_region = self.config.get("default_phone_region", "US")

        self.street_database = street_database.snapshot() if street_database is not None else None
        self.tracker = tracker if tracker is not None else UnmatchedStreetTracker()
        self.street_types = DEFAULT_STREET_TYPES

        self.zip_pattern = re.compile(r"\b(\d{5})(?:-\d{4})?\b")
        self.state_zip_pattern = re.compile(r"\b([A-Z]{2})\.?\s+\d{5}(?:-\d{4})?\b")
        self.po_box_pattern = re.compile(
            r"\b(P\.?\s*O\.?\s*BOX|POST\s+OFFICE\s+BOX|POBOX|POB|BOX)\s*#?\s*(\d[A-Z0-9-]*)", re.IGNORECASE)
        self.unit_pattern = re.compile(r"\b(APT|APARTMENT|UNIT|STE|SUITE|#)\s*\.?\s*([A-Z0-9-]+)\b", re.IGNORECASE)
        self.street_line_pattern = re.compile(r"^(\d+[A-Z]?)\s+(.+)$", re.IGNORECASE)
        self.leading_number_pattern = re.compile(r"^\d+[A-Z]?\s+")

        logger.info("Initialized AddressParser")

    # Raw string cleanup

    def clean_assessor_tags(self, text: str) -> List[str]:
        """
        Replace assessor export tags and split the result into fields.

        ``:^#^:`` stands for a line break inside a field and becomes a
        comma; ``::#^#::`` separates fields.

        Returns:
            Non-empty, trimmed field strings
        """
        text = text.replace(LINE_BREAK_TAG, ", ")
        fields = [normalize_spaces(f).strip(" ,") for f in text.split(FIELD_BREAK_TAG)]
        return [f for f in fields if f]

    def split_po_box(self, text: str) -> Tuple[Optional[str], Optional[str]]:
        """
        Separate a PO Box from a street address written in the same string.

        Returns:
            Tuple of (street part or None, PO Box part or None)
        """
        match = self.po_box_pattern.search(text)
        if not match:
            return text, None

        po_box = f"PO BOX {match.group(2).upper()}"
        remainder = normalize_spaces((text[:match.start()] + " " + text[match.end():]).strip(" ,"))
        remainder = re.sub(r"\s*,\s*,\s*", ", ", remainder).strip(" ,")

        first_part = remainder.split(",")[0].strip()
        if first_part and self.street_line_pattern.match(first_part):
            tail = ", ".join(p.strip() for p in remainder.split(",")[1:] if p.strip())
            return remainder, f"{po_box}, {tail}" if tail else po_box

        return None, f"{po_box}, {remainder}" if remainder else po_box

    # Component extraction

    def tag_components(self, text: str) -> Dict[str, str]:
        """
        Tag an address string with usaddress, falling back to regex extraction.

        Returns:
            Component dict with street_number, street_name, street_type,
            secondary_unit_type, secondary_unit_number, city, state and zip_code
        """
        try:
            tagged, _ = usaddress.tag(text)
        except usaddress.RepeatedLabelError as e:
            logger.warning(f"usaddress could not tag '{text}': {e}; using regex extraction")
            return self.regex_components(text)

        name_parts = [tagged.get(k) for k in ("StreetNamePreDirectional", "StreetNamePreModifier",
                                                "StreetNamePreType", "StreetName")]
        street_type = " ".join(p for p in (tagged.get("StreetNamePostType"),
                                            tagged.get("StreetNamePostDirectional")) if p)

        components = {
            "street_number": tagged.get("AddressNumber"),
            "street_name": " ".join(p for p in name_parts if p) or None,
            "street_type": street_type or None,
            "secondary_unit_type": tagged.get("USPSBoxType") or tagged.get("OccupancyType"),
            "secondary_unit_number": tagged.get("USPSBoxID") or tagged.get("OccupancyIdentifier"),
            "city": tagged.get("PlaceName"),
            "state": tagged.get("StateName"),
            "zip_code": tagged.get("ZipCode")
        }
        return {k: self._clean_field(v) for k, v in components.items()}

    def regex_components(self, text: str) -> Dict[str, str]:
        """Pattern-based extraction used when tagging fails."""
        upper = normalize_key(text)
        components: Dict[str, Optional[str]] = {k: None for k in (
            "street_number", "street_name", "street_type", "secondary_unit_type",
            "secondary_unit_number", "city", "state", "zip_code")}

        zip_matches = self.zip_pattern.findall(upper)
        if zip_matches:
            components["zip_code"] = zip_matches[-1]

        state_match = self.state_zip_pattern.search(upper)
        if state_match:
            components["state"] = state_match.group(1)

        po_box = self.po_box_pattern.search(upper)
        if po_box:
            components["secondary_unit_type"] = "PO BOX"
            components["secondary_unit_number"] = po_box.group(2)

        parts = [p.strip() for p in upper.split(",") if p.strip()]
        if parts:
            street_line = self.po_box_pattern.sub("", parts[0]).strip()
            unit = self.unit_pattern.search(street_line)
            if unit and not po_box:
                components["secondary_unit_type"] = unit.group(1)
                components["secondary_unit_number"] = unit.group(2)
                street_line = street_line[:unit.start()].strip()

            street_match = self.street_line_pattern.match(street_line)
            if street_match:
                components["street_number"] = street_match.group(1)
                street_line = street_match.group(2)
            if street_line and not self.zip_pattern.fullmatch(street_line):
                words = street_line.split()
                if len(words) > 1 and self.street_types.is_street_type(words[-1]):
                    components["street_type"] = words[-1]
                    words = words[:-1]
                components["street_name"] = " ".join(words) or None

        if len(parts) > 1:
            city = parts[1]
            if state_match:
                city = city.replace(state_match.group(0), "")
            city = self.zip_pattern.sub("", city).strip(" ,")
            if city and not (len(parts) == 2 and components["state"] and city == components["state"]):
                components["city"] = city

        return {k: self._clean_field(v) for k, v in components.items()}

    def _clean_field(self, value: Optional[str]) -> Optional[str]:
        if value is None or pd.isna(value):
            return None
        text = normalize_key(str(value)).strip(" ,.")
        return text or None

    def normalize_state(self, state: Optional[str]) -> Optional[str]:
        if not state:
            return None
        state = state.strip().strip(".")
        if len(state) == 2 and state.isalpha():
            return state.upper()
        return STATE_ABBREVIATIONS.get(state.lower())

    def normalize_zip(self, zip_code: Optional[str]) -> Optional[str]:
        if not zip_code:
            return None
        match = self.zip_pattern.search(zip_code)
        if match:
            return match.group(1)
        digits = re.sub(r"\D", "", zip_code)
        # Leading zeros are lost when zips pass through spreadsheets
        if 3 <= len(digits) <= 4:
            return digits.zfill(5)
        return None

    def normalize_phone(self, phone: Any) -> Optional[str]:
        """
        Normalize a phone number to E164 format.

        Returns:
            E164 string, or None when the number is missing or invalid
        """
        if phone is None or pd.isna(phone):
            return None
        try:
            parsed_phone = phonenumbers.parse(str(phone), self.default_phone_region)
        except phonenumbers.NumberParseException as e:
            logger.warning(f"Failed to normalize phone '{phone}': {e}")
            return None

        if not phonenumbers.is_valid_number(parsed_phone):
            logger.warning(f"Discarding invalid phone number '{phone}'")
            return None
        return phonenumbers.format_number(parsed_phone, PhoneNumberFormat.E164)

    def normalize_email(self, email: Any) -> Optional[str]:
        if email is None or pd.isna(email) or not isinstance(email, str):
            return None
        email = email.strip().lower()
        if "@" in email and "." in email.split("@")[1]:
            return email
        return None

    # Local detection

    def _match_local_street(self, fields: List[str]):
        """
        Resolve the street line of a raw address against the street database.

        A match on a multi-field address counts only when the remaining
        fields name the local city or zip.

        Returns:
            Tuple of (entry or None, best score, street text)
        """
        if self.street_database is None or not fields:
            return None, 0.0, None

        street_line = fields[0].split(",")[0].strip()
        street_text = self.leading_number_pattern.sub("", normalize_key(street_line))
        if not street_text or self.po_box_pattern.match(street_text):
            return None, 0.0, None

        entry, score = self.street_database.lookup_with_score(street_text, self.street_match_threshold)
        if entry is None:
            return None, score, street_text

        if len(fields) > 1:
            geography = normalize_key(" ".join(fields[1:]))
            corroborated = self.local_zip in geography or any(c in geography for c in self.local_city_aliases)
            if not corroborated:
                return None, score, street_text

        return entry, score, street_text

    def detect_local(self, components: Dict[str, Optional[str]], street_entry,
                     property_location: bool) -> Optional[str]:
        """
        Decide whether an address is on the local street network.

        Returns:
            The detection method, or None for a non-local address
        """
        if components.get("zip_code") == self.local_zip:
            return MATCH_BY_ZIP
        if components.get("city") in self.local_city_aliases:
            return MATCH_BY_CITY
        if street_entry is not None:
            return MATCH_BY_STREET
        if property_location:
            return MATCH_BY_PROPERTY_LOCATION
        return None

    # Parsing

    def parse(self, raw_address: Any, source: Optional[str] = None, index: Optional[int] = None,
              identifier: Optional[str] = None, field_name: Optional[str] = None,
              property_location: bool = False) -> Optional[Address]:
        """
        Parse one raw address string.

        A string carrying both a PO Box and a street yields the street
        address here; use ``parse_all`` to get both.

        Args:
            raw_address: Raw address string
            source: Record source
            index: Record position
            identifier: Record key
            field_name: Source field the address came from
            property_location: The string is an assessor property location,
                which is local by definition

        Returns:
            Address, or None when nothing meaningful could be parsed
        """
        addresses = self.parse_all(raw_address, source, index, identifier, field_name, property_location)
        return addresses[0] if addresses else None

    def parse_all(self, raw_address: Any, source: Optional[str] = None, index: Optional[int] = None,
                  identifier: Optional[str] = None, field_name: Optional[str] = None,
                  property_location: bool = False) -> List[Address]:
        """Parse a raw string into one address, or two when a PO Box and street are combined."""
        if raw_address is None or not isinstance(raw_address, str) or not raw_address.strip():
            return []

        fields = self.clean_assessor_tags(raw_address.upper())
        if not fields:
            return []

        joined = ", ".join(fields)
        street_part, po_box_part = self.split_po_box(joined)

        parts = []
        if street_part:
            parts.append(street_part)
        if po_box_part:
            parts.append(po_box_part)

        addresses = []
        for text in parts:
            part_fields = [f.strip() for f in text.split(",") if f.strip()]
            address = self._parse_fields(part_fields, raw_address, source, index, identifier,
                                         field_name, property_location)
            if address is not None:
                addresses.append(address)

        if len(addresses) > 1:
            # A combined string shares one city, state and zip
            city, state, zip_code = (addresses[0].city, addresses[0].state, addresses[0].zip_code)
            for address in addresses[1:]:
                address.city = address.city or city
                address.state = address.state or state
                address.zip_code = address.zip_code or zip_code

        return addresses

    def _parse_fields(self, fields: List[str], original: str, source, index, identifier,
                      field_name, property_location) -> Optional[Address]:
        street_entry, street_score, street_text = self._match_local_street(fields)

        text = ", ".join(fields)
        used_placeholder = False
        if street_entry is not None and not self.leading_number_pattern.match(fields[0]):
            text = f"{self.placeholder_number} {text}"
            used_placeholder = True

        components = self.tag_components(text)
        if used_placeholder and components.get("street_number") == self.placeholder_number:
            components["street_number"] = None

        components["state"] = self.normalize_state(components.get("state"))
        components["zip_code"] = self.normalize_zip(components.get("zip_code"))

        if not any(components.get(k) for k in ("street_name", "city", "zip_code", "secondary_unit_number")):
            logger.warning(f"Could not parse address '{original}'")
            return None

        method = self.detect_local(components, street_entry, property_location)
        if method is not None:
            self._complete_local(components, street_entry, street_text)

        address = Address(source=source, index=index, identifier=identifier, field_name=field_name,
                          original_address=original, **components)

        if method is not None:
            entry = street_entry
            if entry is None and self.street_database is not None and components.get("street_name"):
                entry, street_score = self.street_database.lookup_with_score(
                    components["street_name"], self.street_match_threshold)
                if entry is None and not address.is_po_box:
                    best = self.street_database.lookup(components["street_name"], 0.0)
                    self.tracker.record(components["street_name"], street_score,
                                        best.primary_term if best is not None else None, source)
            address.mark_local(method, entry.key if entry is not None else None, entry)

        return address

    def _complete_local(self, components: Dict[str, Optional[str]], street_entry, street_text: Optional[str]):
        components["city"] = self.local_city
        components["state"] = self.local_state
        components["zip_code"] = self.local_zip

        # Local street names keep their full written form, type included
        if street_text and street_entry is not None:
            words = street_text.split(",")[0].split()
            unit = self.unit_pattern.search(" ".join(words))
            name = " ".join(words)[:unit.start()].strip() if unit else " ".join(words)
            components["street_name"] = name or components.get("street_name")
            components["street_type"] = None
        elif components.get("street_name") and components.get("street_type"):
            components["street_name"] = f"{components['street_name']} {components['street_type']}"
            components["street_type"] = None

    def parse_contact_info(self, fields: Dict[str, Any], source: Optional[str] = None,
                           index: Optional[int] = None, identifier: Optional[str] = None) -> Optional[ContactInfo]:
        """
        Build contact info from raw address, email and phone fields.

        Recognized keys: ``property_location``, ``primary_address``,
        ``secondary_addresses`` (string or list), ``email``, ``phone``. The
        property location, when present, is the primary address and any
        mailing address becomes secondary.

        Returns:
            ContactInfo, or None when no field yields a value
        """
        addresses: List[Address] = []

        property_location = fields.get("property_location")
        addresses.extend(self.parse_all(property_location, source, index, identifier,
                                        "property_location", property_location=True))
        addresses.extend(self.parse_all(fields.get("primary_address"), source, index, identifier,
                                        "primary_address"))

        secondary = fields.get("secondary_addresses") or []
        if isinstance(secondary, str):
            secondary = [secondary]
        for position, raw in enumerate(secondary):
            addresses.extend(self.parse_all(raw, source, index, identifier, f"secondary_address_{position}"))

        email = self.normalize_email(fields.get("email"))
        phone = self.normalize_phone(fields.get("phone"))

        if not addresses and email is None and phone is None:
            return None

        return ContactInfo(addresses[0] if addresses else None, addresses[1:], email, phone,
                           source=source, index=index, identifier=identifier)
