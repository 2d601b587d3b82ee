"""Coarse zone matching for dispatch.

Zones are named delivery areas of Amman. The adjacency map is static data:
each entry lists the zones one hop away from the key. Scores grade how close
a courier's declared working zones are to the zone of an order.
"""

from collections.abc import Iterable

DIRECT_MATCH_SCORE = 100
ADJACENT_MATCH_SCORE = 75
SECOND_DEGREE_MATCH_SCORE = 50
NO_MATCH_SCORE = 0

AREA_ADJACENCY: dict[str, tuple[str, ...]] = {
    "وسط البلد": ("جبل عمان", "جبل الحسين", "الشميساني", "الهاشمي"),
    "جبل عمان": ("وسط البلد", "الشميساني", "عبدون", "الرابية"),
    "جبل الحسين": ("وسط البلد", "الشميساني", "طبربور"),
    "الشميساني": ("وسط البلد", "جبل عمان", "جبل الحسين", "عبدون"),
    "عبدون": ("الشميساني", "جبل عمان", "الرابية", "خلدا"),
    "الرابية": ("عبدون", "جبل عمان", "خلدا", "الجبيهة"),
    "خلدا": ("عبدون", "الرابية", "الجبيهة", "صويلح"),
    "الجبيهة": ("خلدا", "الرابية", "صويلح", "شفا بدران"),
    "صويلح": ("الجبيهة", "خلدا", "شفا بدران", "أبو نصير"),
    "طبربور": ("جبل الحسين", "ماركا", "الهاشمي"),
    "ماركا": ("طبربور", "الهاشمي", "الزرقاء"),
    "الهاشمي": ("وسط البلد", "طبربور", "ماركا"),
    "أبو نصير": ("صويلح", "شفا بدران", "الجبيهة"),
    "شفا بدران": ("أبو نصير", "صويلح", "الجبيهة"),
    "المدينة الرياضية": ("الشميساني", "وسط البلد"),
    "الزرقاء": ("ماركا",),
    "السلط": ("صويلح",),
}


def neighbors(zone: str) -> tuple[str, ...]:
    return AREA_ADJACENCY.get(zone, ())


def known_zones() -> list[str]:
    return sorted(AREA_ADJACENCY)


def score(courier_zones: Iterable[str], order_zone: str) -> int:
    zones = set(courier_zones)
    if order_zone in zones:
        return DIRECT_MATCH_SCORE

    adjacent = neighbors(order_zone)
    if zones.intersection(adjacent):
        return ADJACENT_MATCH_SCORE

    for zone in adjacent:
        if zones.intersection(neighbors(zone)):
            return SECOND_DEGREE_MATCH_SCORE

    return NO_MATCH_SCORE
