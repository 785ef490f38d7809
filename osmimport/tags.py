"""Compact encoding of tag dictionaries into lists of strings.

Tags are stored as an array of interleaved keys and values. Frequent
key/value pairs are replaced by a single character from the Unicode private
use area (U+E000 to U+F8FF); frequent keys with free values are replaced by
an ASCII control character (0x01 to 0x1f) prefixed to the value. Keys that
would be mistaken for such codes are escaped with U+FFFD.
"""

from __future__ import annotations

from typing import Optional

MIN_CODEPOINT = 0xE000
MAX_CODEPOINT = 0xF8FF
MAX_KEY_CODEPOINT = 31
ESCAPE = "\ufffd"

# The order of the following lists fixes the on-disk encoding. Never edit,
# remove or reorder entries; only append.
_COMMON_KEYS = (
    "name",
    "addr:street",
    "addr:place",
    "addr:city",
    "addr:postcode",
    "addr:housenumber",
)

_CODEPOINT_TAGS = (
    # most used tags for ways
    ("building", "yes"),
    ("highway", "residential"),
    ("highway", "service"),
    ("wall", "no"),
    ("highway", "unclassified"),
    ("waterway", "stream"),
    ("highway", "track"),
    ("natural", "water"),
    ("oneway", "yes"),
    ("highway", "footway"),
    ("highway", "tertiary"),
    ("access", "private"),
    ("highway", "path"),
    ("highway", "secondary"),
    ("landuse", "forest"),
    ("building", "house"),
    ("bridge", "yes"),
    ("surface", "asphalt"),
    ("natural", "wood"),
    ("foot", "yes"),
    ("landuse", "residential"),
    ("surface", "paved"),
    ("highway", "primary"),
    ("surface", "unpaved"),
    ("landuse", "grass"),
    ("building", "residential"),
    ("service", "parking_aisle"),
    ("oneway", "no"),
    ("railway", "rail"),
    ("bicycle", "yes"),
    ("service", "driveway"),
    ("amenity", "parking"),
    ("area", "yes"),
    ("barrier", "fence"),
    ("tracktype", "grade2"),
    ("natural", "coastline"),
    ("tracktype", "grade3"),
    ("intermittent", "yes"),
    ("landuse", "farmland"),
    ("building", "hut"),
    ("boundary", "administrative"),
    ("lit", "yes"),
    ("highway", "cycleway"),
    ("landuse", "meadow"),
    ("waterway", "river"),
    ("natural", "wetland"),
    ("highway", "trunk"),
    ("surface", "gravel"),
    ("tracktype", "grade1"),
    ("barrier", "wall"),
    ("building", "garage"),
    ("highway", "living_street"),
    ("highway", "motorway"),
    ("tracktype", "grade4"),
    ("landuse", "farm"),
    ("leisure", "pitch"),
    ("surface", "ground"),
    ("tunnel", "yes"),
    ("highway", "motorway_link"),
    ("bicycle", "no"),
    ("highway", "road"),
    ("natural", "scrub"),
    ("highway", "steps"),
    ("foot", "designated"),
    ("waterway", "ditch"),
    ("admin_level", "8"),
    ("tracktype", "grade5"),
    ("access", "yes"),
    ("building", "apartments"),
    ("leisure", "swimming_pool"),
    ("junction", "roundabout"),
    ("highway", "pedestrian"),
    ("barrier", "hedge"),
    ("bicycle", "designated"),
    ("leisure", "park"),
    ("service", "alley"),
    ("landuse", "farmyard"),
    ("building", "industrial"),
    ("waterway", "riverbank"),
    ("building", "roof"),
    ("surface", "dirt"),
    ("waterway", "drain"),
    ("surface", "grass"),
    ("amenity", "school"),
    ("power", "line"),
    ("landuse", "industrial"),
    ("landuse", "reservoir"),
    ("water", "intermittent"),
    ("highway", "trunk_link"),
    ("segregated", "no"),
    ("horse", "no"),
    ("wood", "deciduous"),
    ("highway", "primary_link"),
    ("foot", "no"),
    ("lit", "no"),
    ("surface", "concrete"),
    ("building", "garages"),
    ("amenity", "place_of_worship"),
    ("religion", "christian"),
    ("waterway", "canal"),
    ("landuse", "orchard"),
    ("surface", "paving_stones"),
    ("leisure", "garden"),
    ("service", "spur"),
    ("living_street", "yes"),
    ("access", "permissive"),
    ("sport", "soccer"),
    ("frequency", "0"),
    ("landuse", "cemetery"),
    ("wood", "mixed"),
    ("motorcar", "no"),
    ("access", "no"),
    ("man_made", "pier"),
    ("oneway", "-1"),
    ("sport", "tennis"),
    ("noexit", "yes"),
    ("service", "yard"),
    ("wood", "coniferous"),
    ("natural", "cliff"),
    ("leisure", "playground"),
    ("cycleway", "lane"),
    ("surface", "cobblestone"),
    ("landuse", "vineyard"),
    ("frequency", "16.7"),
    # most used tags for nodes
    ("power", "tower"),
    ("natural", "tree"),
    ("highway", "bus_stop"),
    ("power", "pole"),
    ("place", "locality"),
    ("highway", "turning_circle"),
    ("highway", "crossing"),
    ("place", "village"),
    ("place", "hamlet"),
    ("highway", "traffic_signals"),
    ("barrier", "gate"),
    ("amenity", "bench"),
    ("man_made", "survey_point"),
    ("amenity", "restaurant"),
    ("natural", "peak"),
    ("railway", "level_crossing"),
    ("type", "broad_leaved"),
    ("highway", "street_lamp"),
    ("tourism", "information"),
    ("wheelchair", "yes"),
    ("building", "entrance"),
    ("public_transport", "stop_position"),
    ("amenity", "fuel"),
    ("barrier", "bollard"),
    ("amenity", "post_box"),
    ("natural", "rock"),
    ("shelter", "yes"),
    ("emergency", "fire_hydrant"),
    ("public_transport", "platform"),
    ("amenity", "grave_yard"),
    ("shop", "convenience"),
    ("power", "generator"),
    ("shop", "supermarket"),
    ("amenity", "bank"),
    ("amenity", "fast_food"),
    ("amenity", "cafe"),
    # most used tags for relations
    ("type", "multipolygon"),
    ("type", "route"),
    ("type", "restriction"),
    ("type", "boundary"),
    ("type", "site"),
    ("type", "associatedStreet"),
)


def _build_tag_tables() -> tuple[dict[str, dict[str, str]], dict[int, tuple[str, str]], int]:
    to_char: dict[str, dict[str, str]] = {}
    from_code: dict[int, tuple[str, str]] = {}
    code = MIN_CODEPOINT
    for key, value in _CODEPOINT_TAGS:
        if code > MAX_CODEPOINT:
            raise RuntimeError("all codepoints used")
        values = to_char.setdefault(key, {})
        if value in values:
            raise RuntimeError(f"duplicate entry for tag codepoints: {key} {value}")
        values[value] = chr(code)
        from_code[code] = (key, value)
        code += 1
    return to_char, from_code, code


def _build_key_tables() -> tuple[dict[str, int], dict[int, str]]:
    if len(_COMMON_KEYS) > MAX_KEY_CODEPOINT:
        raise RuntimeError("all key codepoints used")
    to_code = {key: code for code, key in enumerate(_COMMON_KEYS, start=1)}
    from_code = {code: key for key, code in to_code.items()}
    return to_code, from_code


_TAG_TO_CHAR, _CODE_TO_TAG, _NEXT_CODEPOINT = _build_tag_tables()
_KEY_TO_CODE, _CODE_TO_KEY = _build_key_tables()


def tag_codepoint(key: str, value: str) -> Optional[str]:
    """Return the single character that encodes key=value, or None."""
    return _TAG_TO_CHAR.get(key, {}).get(value)


def append_tag(arr: list[str], key: str, val: str) -> list[str]:
    """Append the encoding of one tag to arr and return arr."""
    char = tag_codepoint(key, val)
    if char is not None:
        arr.append(char)
        return arr
    code = _KEY_TO_CODE.get(key)
    if code is not None:
        arr.append(chr(code) + val)
        return arr
    if key:
        first = ord(key[0])
        if first < 32 or MIN_CODEPOINT <= first <= MAX_CODEPOINT or key[0] == ESCAPE:
            key = ESCAPE + key
    arr.append(key)
    arr.append(val)
    return arr


def tags_as_array(tags: dict[str, str]) -> list[str]:
    """Encode a tag dictionary into a list of strings."""
    result: list[str] = []
    for key, val in tags.items():
        append_tag(result, key, val)
    return result


def _value_after(arr: list[str], i: int) -> str:
    if i + 1 >= len(arr):
        raise ValueError("internal cache corrupt: tag key without value")
    return arr[i + 1]


def tags_from_array(arr: list[str]) -> dict[str, str]:
    """Decode a list produced by tags_as_array back into a dictionary.

    Raises ValueError when the list is truncated.
    """
    result: dict[str, str] = {}
    items = iter(range(len(arr)))
    for i in items:
        item = arr[i]
        first = ord(item[0]) if item else None
        if first is not None and first >= 0x800:
            if item[0] == ESCAPE:
                result[item[1:]] = _value_after(arr, i)
                next(items, None)
                continue
            if MIN_CODEPOINT <= first < _NEXT_CODEPOINT:
                key, value = _CODE_TO_TAG[first]
                result[key] = value
                continue
        elif first is not None and first < 32:
            result[_CODE_TO_KEY.get(first, "")] = item[1:]
            continue
        result[item] = _value_after(arr, i)
        next(items, None)
    return result