"""Inflection helpers used to name associations."""

REFERENCE_SUFFIX = "_id"

_IRREGULAR_SINGULARS = {
    "children": "child",
    "feet": "foot",
    "geese": "goose",
    "men": "man",
    "mice": "mouse",
    "people": "person",
    "teeth": "tooth",
    "women": "woman",
    "oxen": "ox",
}

_UNCOUNTABLE = {"news", "data", "information", "equipment", "series", "species", "fish", "sheep", "deer"}


def singularize(word: str) -> str:
    """Convert a plural English word to its singular form.

    Handles common suffix rules and a fixed list of irregular words; the last
    underscore separated segment is the one inflected.

        >>> singularize("categories")
        'category'
        >>> singularize("blog_posts")
        'blog_post'
    """
    head, sep, last = word.rpartition("_")
    lowered = last.lower()

    if lowered in _UNCOUNTABLE:
        singular = last
    elif lowered in _IRREGULAR_SINGULARS:
        singular = _IRREGULAR_SINGULARS[lowered]
    elif lowered.endswith("ies") and len(last) > 3:
        singular = last[:-3] + "y"
    elif lowered.endswith("ves"):
        base = last[:-3]
        singular = base + "f" if base.lower().endswith(("l", "r")) else base + "fe"
    elif lowered.endswith("zzes"):
        singular = last[:-3]
    elif lowered.endswith(("ses", "ches", "shes", "xes", "oes")):
        singular = last[:-2]
    elif lowered.endswith("zes"):
        singular = last[:-1]
    elif lowered.endswith("s") and not lowered.endswith("ss"):
        singular = last[:-1]
    else:
        singular = last

    return f"{head}{sep}{singular}"


def association_name(field: str, referenced_table: str, suffix: str = REFERENCE_SUFFIX) -> str:
    """Derive the association name of a foreign key field.

    Strips the reference suffix (``user_id`` -> ``user``). Fields without the
    suffix are named after the singularized referenced table instead.
    """
    if field.endswith(suffix) and len(field) > len(suffix):
        return field[: -len(suffix)]
    return singularize(referenced_table)
